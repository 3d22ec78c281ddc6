"""Service layer that composes split validation, storage and settlement.

Writes always go through the split validator before touching the database;
reads hand a fresh snapshot to the settlement engine. Nothing computed here
is cached between calls.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date

from ..config import Settings
from ..db import Database
from ..exceptions import (
    ExpenseNotFoundError,
    MemberNotFoundError,
    NotFoundError,
    TripNotFoundError,
)
from ..models import (
    Expense,
    ExpenseActivity,
    ExpenseSplit,
    Member,
    SplitMode,
    Trip,
    TripReport,
)
from .money import ZERO, quantize_cents
from .settlement import UNKNOWN_MEMBER, compute_balances_and_settlements
from .splitter import compute_splits, infer_split_mode, parse_total

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for recording trip expenses and working out who owes whom."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the ledger service."""
        self.settings = settings
        self.db = database

    # ========================================================================
    # Trips
    # ========================================================================

    def create_trip(self, name: str) -> Trip:
        name = name.strip()
        if not name:
            raise ValueError("Trip name cannot be empty")
        trip = self.db.create_trip(name)
        logger.info(f"Created trip '{trip.name}' ({trip.id})")
        return trip

    def list_trips(self) -> list[Trip]:
        return self.db.list_trips()

    def get_trip(self, trip_id: str) -> Trip:
        trip = self.db.get_trip(trip_id)
        if trip is None:
            raise TripNotFoundError(trip_id)
        return trip

    def resolve_trip(self, ref: str) -> Trip:
        """
        Find a trip by id, name (case-insensitive) or unique id prefix.

        Raises:
            TripNotFoundError: If nothing (or more than one trip) matches
        """
        trip = self.db.get_trip(ref)
        if trip:
            return trip

        trips = self.db.list_trips()
        return _pick_unique(
            ref,
            [t for t in trips if t.name.lower() == ref.strip().lower()]
            or [t for t in trips if t.id.startswith(ref)],
            TripNotFoundError,
        )

    def delete_trip(self, trip_id: str) -> Trip:
        trip = self.get_trip(trip_id)
        self.db.delete_trip(trip.id)
        logger.info(f"Deleted trip '{trip.name}' ({trip.id})")
        return trip

    # ========================================================================
    # Members
    # ========================================================================

    def add_member(self, trip_id: str, name: str) -> Member:
        trip = self.get_trip(trip_id)
        name = name.strip()
        if not name:
            raise ValueError("Member name cannot be empty")
        member = self.db.add_member(trip.id, name)
        logger.info(f"Added member '{member.name}' to trip '{trip.name}'")
        return member

    def list_members(self, trip_id: str) -> list[Member]:
        return self.db.list_members(self.get_trip(trip_id).id)

    def resolve_member(self, trip_id: str, ref: str) -> Member:
        """
        Find a trip member by id, name (case-insensitive) or unique id prefix.

        Raises:
            MemberNotFoundError: If nothing (or more than one member) matches
        """
        members = self.list_members(trip_id)
        for member in members:
            if member.id == ref:
                return member

        return _pick_unique(
            ref,
            [m for m in members if m.name.lower() == ref.strip().lower()]
            or [m for m in members if m.id.startswith(ref)],
            MemberNotFoundError,
        )

    def remove_member(self, trip_id: str, member_id: str) -> Member:
        """
        Remove a member from a trip.

        Also removes every expense the member paid for and every share they
        had in other expenses.
        """
        member = self.db.get_member(member_id)
        if member is None or member.trip_id != trip_id:
            raise MemberNotFoundError(member_id)

        self.db.delete_member(member.id)
        logger.info(f"Removed member '{member.name}' and their expenses/shares")
        return member

    # ========================================================================
    # Expenses
    # ========================================================================

    def record_expense(
        self,
        trip_id: str,
        name: str,
        amount: object,
        paid_by_member_id: str,
        participants: Iterable[str],
        mode: SplitMode = "equal",
        custom_shares: Mapping[str, object] | None = None,
        currency: str | None = None,
        expense_date: date | None = None,
        category: str | None = None,
    ) -> tuple[Expense, list[ExpenseSplit]]:
        """
        Validate and store a new expense with its splits.

        Raises:
            SplitValidationError: If the amount or shares are invalid
            TripNotFoundError: If the trip doesn't exist
            MemberNotFoundError: If the payer or a participant isn't a trip member
        """
        trip = self.get_trip(trip_id)
        currency = self._currency(currency)
        participants = list(participants)
        self._check_members(trip.id, [paid_by_member_id, *participants])

        total = parse_total(amount)
        shares = compute_splits(total, currency, mode, participants, custom_shares)

        expense, splits = self.db.insert_expense(
            trip_id=trip.id,
            name=name.strip() or "Expense",
            amount=total,
            currency=currency,
            paid_by_member_id=paid_by_member_id,
            expense_date=expense_date or date.today(),
            category=category or self.settings.default_category,
            shares=shares,
        )
        logger.info(
            f"Recorded '{expense.name}' {currency} {total} "
            f"split {mode} between {len(splits)} members"
        )
        return expense, splits

    def update_expense(
        self,
        expense_id: str,
        name: str | None = None,
        amount: object | None = None,
        paid_by_member_id: str | None = None,
        participants: Iterable[str] | None = None,
        mode: SplitMode | None = None,
        custom_shares: Mapping[str, object] | None = None,
        currency: str | None = None,
        expense_date: date | None = None,
        category: str | None = None,
    ) -> tuple[Expense, list[ExpenseSplit]]:
        """
        Edit an expense, recomputing and replacing its splits.

        Anything left as None keeps its current value. Without an explicit
        mode, the mode is inferred from the current shares; a custom split
        whose shares aren't restated keeps its current shares.
        """
        existing = self.get_expense(expense_id)
        current_splits = self.db.list_expense_splits(existing.id)

        members = (
            list(participants)
            if participants is not None
            else [split.member_id for split in current_splits]
        )
        payer = paid_by_member_id or existing.paid_by_member_id
        self._check_members(existing.trip_id, [payer, *members])

        if mode is None:
            mode = infer_split_mode(split.share_amount for split in current_splits)
        if mode == "custom" and custom_shares is None:
            custom_shares = {s.member_id: s.share_amount for s in current_splits}

        total = parse_total(existing.amount if amount is None else amount)
        currency = self._currency(currency or existing.currency)
        shares = compute_splits(total, currency, mode, members, custom_shares)

        expense, splits = self.db.replace_expense(
            expense_id=existing.id,
            name=(name.strip() if name else None) or existing.name,
            amount=total,
            currency=currency,
            paid_by_member_id=payer,
            expense_date=expense_date or existing.date,
            category=category or existing.category,
            shares=shares,
        )
        logger.info(f"Updated '{expense.name}' with {len(splits)} splits")
        return expense, splits

    def get_expense(self, expense_id: str) -> Expense:
        expense = self.db.get_expense(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(expense_id)
        return expense

    def resolve_expense(self, ref: str) -> Expense:
        """Find an expense by id or unique id prefix."""
        expense = self.db.get_expense(ref)
        if expense:
            return expense
        return _pick_unique(
            ref, self.db.find_expenses_by_prefix(ref), ExpenseNotFoundError
        )

    def get_expense_splits(self, expense_id: str) -> list[ExpenseSplit]:
        return self.db.list_expense_splits(self.get_expense(expense_id).id)

    def delete_expense(self, expense_id: str) -> Expense:
        expense = self.get_expense(expense_id)
        self.db.delete_expense(expense.id)
        logger.info(f"Deleted expense '{expense.name}' ({expense.id})")
        return expense

    def list_activity(self, trip_id: str) -> list[ExpenseActivity]:
        """
        Build the activity feed for a trip, most recent expense first.

        ``per_head`` is the expense amount divided by the number of people it
        was split with, as a quick "each person's part" figure.
        """
        members, expenses, splits = self.db.snapshot(self.get_trip(trip_id).id)
        names = {member.id: member.name for member in members}

        split_members: dict[str, list[str]] = {}
        for split in splits:
            split_members.setdefault(split.expense_id, []).append(split.member_id)

        activity = []
        for expense in expenses:
            member_ids = split_members.get(expense.id, [])
            per_head = (
                quantize_cents(expense.amount / len(member_ids)) if member_ids else ZERO
            )
            activity.append(
                ExpenseActivity(
                    expense=expense,
                    payer_name=names.get(expense.paid_by_member_id, UNKNOWN_MEMBER),
                    split_with=[names[m] for m in member_ids if m in names],
                    per_head=per_head,
                )
            )
        return activity

    # ========================================================================
    # Settle up
    # ========================================================================

    def build_report(self, trip_id: str) -> TripReport:
        """Compute balances and settlements for a trip from its current records."""
        trip = self.get_trip(trip_id)
        members, expenses, splits = self.db.snapshot(trip.id)
        ledgers = compute_balances_and_settlements(members, expenses, splits)

        logger.info(
            f"Settle-up for '{trip.name}': {len(expenses)} expenses, "
            f"{sum(len(ledger.settlements) for ledger in ledgers.values())} payments "
            f"across {len(ledgers)} currencies"
        )
        return TripReport(trip=trip, members=members, ledgers=ledgers)

    # ========================================================================
    # Helpers
    # ========================================================================

    def _currency(self, currency: str | None) -> str:
        code = (currency or self.settings.default_currency).strip()
        if not code:
            raise ValueError("Currency code cannot be empty")
        return code

    def _check_members(self, trip_id: str, member_ids: Iterable[str]):
        known = {member.id for member in self.db.list_members(trip_id)}
        for member_id in member_ids:
            if member_id not in known:
                raise MemberNotFoundError(member_id)


def _pick_unique(ref: str, matches: list, error_cls: type[NotFoundError]):
    """Return the single match for ``ref`` or raise ``error_cls``."""
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise error_cls(ref, f"'{ref}' is ambiguous ({len(matches)} matches)")
    raise error_cls(ref)
