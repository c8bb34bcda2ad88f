"""Caseload rule engines: reminders, schedule projection and timesheet notes."""

from caseload.reminders import get_all_reminders
from caseload.schedule_expansion import expand_for_date
from caseload.timesheet import generate_prospective_timesheet_note, generate_timesheet_note

__all__ = [
    "get_all_reminders",
    "expand_for_date",
    "generate_timesheet_note",
    "generate_prospective_timesheet_note",
]
