"""SplitMe - Split shared trip expenses and work out who owes whom."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .models import (
    Expense,
    ImportResult,
    ImportSummary,
    ParsedRow,
    Participant,
    Settlement,
    Trip,
)
from .service import TripService
from .settlements import compute_balances, compute_settlements
from .spreadsheet import parse_spreadsheet

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "Expense",
    "ImportResult",
    "ImportSummary",
    "ParsedRow",
    "Participant",
    "Settlement",
    "Trip",
    "TripService",
    "compute_balances",
    "compute_settlements",
    "parse_spreadsheet",
]
