"""Expense splitting and settle-up for trips."""

from .settlement import (
    compute_balances,
    compute_balances_and_settlements,
    minimize_settlements,
)
from .splitter import compute_splits, infer_split_mode, split_residue

__all__ = [
    "compute_balances",
    "compute_balances_and_settlements",
    "minimize_settlements",
    "compute_splits",
    "infer_split_mode",
    "split_residue",
]
