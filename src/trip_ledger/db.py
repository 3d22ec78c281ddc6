"""SQLite database operations for TripLedger."""

import sqlite3
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from .exceptions import ExpenseNotFoundError
from .models import Expense, ExpenseSplit, Member, Trip


def _new_id() -> str:
    return str(uuid.uuid4())


class Database:
    """SQLite database manager.

    Owns id and timestamp generation. Every multi-row write (an expense with
    its splits, or a cascade delete) runs in a single transaction.
    """

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS trips (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS members (
                id TEXT PRIMARY KEY,
                trip_id TEXT NOT NULL REFERENCES trips(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        # Amounts are TEXT so decimals round-trip exactly
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                trip_id TEXT NOT NULL REFERENCES trips(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                amount TEXT NOT NULL,
                currency TEXT NOT NULL,
                paid_by_member_id TEXT NOT NULL
                    REFERENCES members(id) ON DELETE CASCADE,
                date DATE NOT NULL,
                category TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expense_splits (
                id TEXT PRIMARY KEY,
                expense_id TEXT NOT NULL REFERENCES expenses(id) ON DELETE CASCADE,
                member_id TEXT NOT NULL REFERENCES members(id) ON DELETE CASCADE,
                share_amount TEXT NOT NULL
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Trip operations
    # ========================================================================

    def create_trip(self, name: str) -> Trip:
        """Create a trip."""
        now = datetime.now()
        trip = Trip(id=_new_id(), name=name, created_at=now, updated_at=now)
        self.conn.execute(
            "INSERT INTO trips (id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (trip.id, trip.name, now.isoformat(), now.isoformat()),
        )
        self.conn.commit()
        return trip

    def get_trip(self, trip_id: str) -> Trip | None:
        """Get a trip by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT id, name, created_at, updated_at FROM trips WHERE id = ?",
            (trip_id,),
        )
        row = cursor.fetchone()
        return _row_to_trip(row) if row else None

    def list_trips(self) -> list[Trip]:
        """Get all trips, newest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, name, created_at, updated_at
            FROM trips
            ORDER BY created_at DESC, rowid DESC
            """
        )
        return [_row_to_trip(row) for row in cursor.fetchall()]

    def delete_trip(self, trip_id: str) -> bool:
        """Delete a trip with its members, expenses and splits."""
        with self.conn:
            self.conn.execute(
                """
                DELETE FROM expense_splits WHERE expense_id IN (
                    SELECT id FROM expenses WHERE trip_id = ?
                )
                """,
                (trip_id,),
            )
            self.conn.execute("DELETE FROM expenses WHERE trip_id = ?", (trip_id,))
            self.conn.execute("DELETE FROM members WHERE trip_id = ?", (trip_id,))
            cursor = self.conn.execute("DELETE FROM trips WHERE id = ?", (trip_id,))
        return cursor.rowcount > 0

    # ========================================================================
    # Member operations
    # ========================================================================

    def add_member(self, trip_id: str, name: str) -> Member:
        """Add a member to a trip."""
        member = Member(id=_new_id(), trip_id=trip_id, name=name)
        self.conn.execute(
            "INSERT INTO members (id, trip_id, name, created_at) VALUES (?, ?, ?, ?)",
            (member.id, member.trip_id, member.name, member.created_at.isoformat()),
        )
        self.conn.commit()
        return member

    def get_member(self, member_id: str) -> Member | None:
        """Get a member by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT id, trip_id, name, created_at FROM members WHERE id = ?",
            (member_id,),
        )
        row = cursor.fetchone()
        return _row_to_member(row) if row else None

    def list_members(self, trip_id: str) -> list[Member]:
        """Get a trip's members in the order they were added."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, trip_id, name, created_at
            FROM members
            WHERE trip_id = ?
            ORDER BY created_at, rowid
            """,
            (trip_id,),
        )
        return [_row_to_member(row) for row in cursor.fetchall()]

    def delete_member(self, member_id: str) -> bool:
        """
        Delete a member, the expenses they paid and every split naming them.

        Expenses paid by someone else keep their remaining splits.
        """
        with self.conn:
            self.conn.execute(
                """
                DELETE FROM expense_splits
                WHERE member_id = ?
                   OR expense_id IN (
                       SELECT id FROM expenses WHERE paid_by_member_id = ?
                   )
                """,
                (member_id, member_id),
            )
            self.conn.execute(
                "DELETE FROM expenses WHERE paid_by_member_id = ?", (member_id,)
            )
            cursor = self.conn.execute(
                "DELETE FROM members WHERE id = ?", (member_id,)
            )
        return cursor.rowcount > 0

    # ========================================================================
    # Expense operations
    # ========================================================================

    def insert_expense(
        self,
        trip_id: str,
        name: str,
        amount: Decimal,
        currency: str,
        paid_by_member_id: str,
        expense_date: date,
        category: str,
        shares: Mapping[str, Decimal],
    ) -> tuple[Expense, list[ExpenseSplit]]:
        """Insert an expense together with its splits."""
        now = datetime.now()
        expense = Expense(
            id=_new_id(),
            trip_id=trip_id,
            name=name,
            amount=amount,
            currency=currency,
            paid_by_member_id=paid_by_member_id,
            date=expense_date,
            category=category,
            created_at=now,
            updated_at=now,
        )
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO expenses (
                    id, trip_id, name, amount, currency, paid_by_member_id,
                    date, category, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    expense.id,
                    expense.trip_id,
                    expense.name,
                    str(expense.amount),
                    expense.currency,
                    expense.paid_by_member_id,
                    expense.date.isoformat(),
                    expense.category,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            splits = self._insert_splits(expense.id, shares)
        return expense, splits

    def replace_expense(
        self,
        expense_id: str,
        name: str,
        amount: Decimal,
        currency: str,
        paid_by_member_id: str,
        expense_date: date,
        category: str,
        shares: Mapping[str, Decimal],
    ) -> tuple[Expense, list[ExpenseSplit]]:
        """Update an expense and swap its splits for new ones."""
        existing = self.get_expense(expense_id)
        if existing is None:
            raise ExpenseNotFoundError(expense_id)

        expense = existing.model_copy(
            update={
                "name": name,
                "amount": amount,
                "currency": currency,
                "paid_by_member_id": paid_by_member_id,
                "date": expense_date,
                "category": category,
                "updated_at": datetime.now(),
            }
        )
        with self.conn:
            self.conn.execute(
                """
                UPDATE expenses SET
                    name = ?, amount = ?, currency = ?, paid_by_member_id = ?,
                    date = ?, category = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    expense.name,
                    str(expense.amount),
                    expense.currency,
                    expense.paid_by_member_id,
                    expense.date.isoformat(),
                    expense.category,
                    expense.updated_at.isoformat(),
                    expense.id,
                ),
            )
            self.conn.execute(
                "DELETE FROM expense_splits WHERE expense_id = ?", (expense.id,)
            )
            splits = self._insert_splits(expense.id, shares)
        return expense, splits

    def _insert_splits(
        self, expense_id: str, shares: Mapping[str, Decimal]
    ) -> list[ExpenseSplit]:
        splits = [
            ExpenseSplit(
                id=_new_id(),
                expense_id=expense_id,
                member_id=member_id,
                share_amount=share,
            )
            for member_id, share in shares.items()
        ]
        self.conn.executemany(
            """
            INSERT INTO expense_splits (id, expense_id, member_id, share_amount)
            VALUES (?, ?, ?, ?)
            """,
            [
                (split.id, split.expense_id, split.member_id, str(split.share_amount))
                for split in splits
            ],
        )
        return splits

    def get_expense(self, expense_id: str) -> Expense | None:
        """Get an expense by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {_EXPENSE_COLUMNS} FROM expenses WHERE id = ?", (expense_id,)
        )
        row = cursor.fetchone()
        return _row_to_expense(row) if row else None

    def find_expenses_by_prefix(self, prefix: str) -> list[Expense]:
        """Get expenses whose id starts with ``prefix``."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {_EXPENSE_COLUMNS} FROM expenses WHERE id LIKE ? ESCAPE '\\'",
            (_escape_like(prefix) + "%",),
        )
        return [_row_to_expense(row) for row in cursor.fetchall()]

    def list_expenses(self, trip_id: str) -> list[Expense]:
        """Get a trip's expenses, most recent date first."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT {_EXPENSE_COLUMNS}
            FROM expenses
            WHERE trip_id = ?
            ORDER BY date DESC, created_at DESC, rowid DESC
            """,
            (trip_id,),
        )
        return [_row_to_expense(row) for row in cursor.fetchall()]

    def delete_expense(self, expense_id: str) -> bool:
        """Delete an expense and its splits."""
        with self.conn:
            self.conn.execute(
                "DELETE FROM expense_splits WHERE expense_id = ?", (expense_id,)
            )
            cursor = self.conn.execute(
                "DELETE FROM expenses WHERE id = ?", (expense_id,)
            )
        return cursor.rowcount > 0

    # ========================================================================
    # Split operations
    # ========================================================================

    def list_expense_splits(self, expense_id: str) -> list[ExpenseSplit]:
        """Get the splits of one expense."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, expense_id, member_id, share_amount
            FROM expense_splits
            WHERE expense_id = ?
            ORDER BY rowid
            """,
            (expense_id,),
        )
        return [_row_to_split(row) for row in cursor.fetchall()]

    def list_splits(self, trip_id: str) -> list[ExpenseSplit]:
        """Get every split of a trip's expenses."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT s.id, s.expense_id, s.member_id, s.share_amount
            FROM expense_splits s
            JOIN expenses e ON e.id = s.expense_id
            WHERE e.trip_id = ?
            ORDER BY s.rowid
            """,
            (trip_id,),
        )
        return [_row_to_split(row) for row in cursor.fetchall()]

    def snapshot(
        self, trip_id: str
    ) -> tuple[list[Member], list[Expense], list[ExpenseSplit]]:
        """Read everything the settlement engine needs for one trip."""
        return (
            self.list_members(trip_id),
            self.list_expenses(trip_id),
            self.list_splits(trip_id),
        )


# ============================================================================
# Row mapping
# ============================================================================

_EXPENSE_COLUMNS = (
    "id, trip_id, name, amount, currency, paid_by_member_id, "
    "date, category, created_at, updated_at"
)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_trip(row: sqlite3.Row) -> Trip:
    return Trip(
        id=row["id"],
        name=row["name"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_member(row: sqlite3.Row) -> Member:
    return Member(
        id=row["id"],
        trip_id=row["trip_id"],
        name=row["name"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_expense(row: sqlite3.Row) -> Expense:
    return Expense(
        id=row["id"],
        trip_id=row["trip_id"],
        name=row["name"],
        amount=Decimal(row["amount"]),
        currency=row["currency"],
        paid_by_member_id=row["paid_by_member_id"],
        date=date.fromisoformat(row["date"]),
        category=row["category"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_split(row: sqlite3.Row) -> ExpenseSplit:
    return ExpenseSplit(
        id=row["id"],
        expense_id=row["expense_id"],
        member_id=row["member_id"],
        share_amount=Decimal(row["share_amount"]),
    )
