"""TripLedger - Track shared trip expenses and settle up with the fewest payments."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .ledger.service import LedgerService
from .ledger.settlement import compute_balances_and_settlements
from .ledger.splitter import compute_splits
from .models import (
    CurrencyLedger,
    Expense,
    ExpenseSplit,
    Member,
    Settlement,
    Trip,
    TripReport,
)

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "CurrencyLedger",
    "Expense",
    "ExpenseSplit",
    "Member",
    "Settlement",
    "Trip",
    "TripReport",
    "compute_balances_and_settlements",
    "compute_splits",
    "LedgerService",
]
