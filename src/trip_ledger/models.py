"""Pydantic domain models for TripLedger."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

SplitMode = Literal["equal", "custom"]

# Suggested labels; any non-empty category is accepted.
DEFAULT_CATEGORIES = ("Food", "Hotel", "Transport", "Activity", "Other")

# ============================================================================
# Stored records
# ============================================================================


class Trip(BaseModel):
    """A named group-expense context."""

    id: str
    name: str = Field(min_length=1)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Member(BaseModel):
    """A participant in a trip."""

    id: str
    trip_id: str
    name: str = Field(min_length=1)
    created_at: datetime = Field(default_factory=datetime.now)


class Expense(BaseModel):
    """A single recorded payment."""

    id: str
    trip_id: str
    name: str
    amount: Decimal
    currency: str = Field(min_length=1)
    paid_by_member_id: str
    date: date
    category: str = "Other"
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ExpenseSplit(BaseModel):
    """A member's share of one expense."""

    id: str
    expense_id: str
    member_id: str
    share_amount: Decimal


# ============================================================================
# Derived views
# ============================================================================


class Settlement(BaseModel):
    """A suggested payment from a debtor to a creditor."""

    from_member_id: str
    from_name: str
    to_member_id: str
    to_name: str
    amount: Decimal
    currency: str


class CurrencyLedger(BaseModel):
    """Balances and settlements for one currency of a trip.

    An empty ``settlements`` list means everyone is settled up in this
    currency; a currency with no expenses has no ledger at all.
    """

    currency: str
    balances: dict[str, Decimal]
    settlements: list[Settlement] = Field(default_factory=list)

    @property
    def is_settled(self) -> bool:
        return not self.settlements


class TripReport(BaseModel):
    """Everything the presentation layer needs to show a trip's settle-up view."""

    trip: Trip
    members: list[Member]
    ledgers: dict[str, CurrencyLedger] = Field(default_factory=dict)

    @property
    def has_expenses(self) -> bool:
        return bool(self.ledgers)

    def member_name(self, member_id: str) -> str:
        for member in self.members:
            if member.id == member_id:
                return member.name
        return "Unknown"


class ExpenseActivity(BaseModel):
    """One row of a trip's activity feed."""

    expense: Expense
    payer_name: str
    split_with: list[str]
    per_head: Decimal
