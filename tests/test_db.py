"""Tests for the SQLite store."""

import sqlite3
from datetime import date
from decimal import Decimal

import pytest

from trip_ledger.db import Database
from trip_ledger.exceptions import ExpenseNotFoundError


@pytest.fixture
def people(db):
    """A trip with Asha, Ben and Chen."""
    trip = db.create_trip("Hanoi")
    asha, ben, chen = (db.add_member(trip.id, n) for n in ("Asha", "Ben", "Chen"))
    return trip, asha, ben, chen


def insert(db, trip, payer, amount, shares, currency="VND", day=1, name="Pho"):
    return db.insert_expense(
        trip_id=trip.id,
        name=name,
        amount=Decimal(amount),
        currency=currency,
        paid_by_member_id=payer.id,
        expense_date=date(2026, 5, day),
        category="Food",
        shares={member.id: Decimal(share) for member, share in shares.items()},
    )


class TestSchema:
    """Opening and reopening a database."""

    def test_reopen_keeps_data(self, tmp_path):
        path = tmp_path / "ledger.db"
        first = Database(path)
        trip = first.create_trip("Kyoto")
        first.close()

        second = Database(path)
        try:
            assert second.get_trip(trip.id) == trip
        finally:
            second.close()


class TestTrips:
    """Trip records."""

    def test_create_and_get(self, db):
        trip = db.create_trip("Kyoto")

        assert db.get_trip(trip.id) == trip
        assert db.get_trip("missing") is None

    def test_list_newest_first(self, db):
        first = db.create_trip("One")
        second = db.create_trip("Two")

        assert [t.id for t in db.list_trips()] == [second.id, first.id]

    def test_delete_cascades(self, db, people):
        trip, asha, ben, chen = people
        insert(db, trip, asha, "90000", {asha: "45000", ben: "45000"})

        assert db.delete_trip(trip.id)

        assert db.get_trip(trip.id) is None
        assert db.list_members(trip.id) == []
        assert db.list_expenses(trip.id) == []
        assert db.list_splits(trip.id) == []
        assert not db.delete_trip(trip.id)


class TestMembers:
    """Member records and the member cascade."""

    def test_listed_in_insertion_order(self, db, people):
        trip, asha, ben, chen = people

        assert [m.name for m in db.list_members(trip.id)] == ["Asha", "Ben", "Chen"]

    def test_get_member(self, db, people):
        trip, asha, ben, chen = people

        assert db.get_member(ben.id) == ben
        assert db.get_member("missing") is None

    def test_delete_member_removes_paid_expenses_and_shares(self, db, people):
        trip, asha, ben, chen = people
        by_chen, _ = insert(
            db, trip, chen, "300", {asha: "100", ben: "100", chen: "100"}
        )
        by_asha, _ = insert(db, trip, asha, "90", {asha: "30", ben: "30", chen: "30"})

        assert db.delete_member(chen.id)

        assert db.get_member(chen.id) is None
        assert db.get_expense(by_chen.id) is None
        assert db.get_expense(by_asha.id) is not None
        remaining = db.list_splits(trip.id)
        assert {s.member_id for s in remaining} == {asha.id, ben.id}
        assert {s.expense_id for s in remaining} == {by_asha.id}

    def test_delete_unknown_member(self, db):
        assert not db.delete_member("missing")


class TestExpenses:
    """Expense records and their splits."""

    def test_insert_with_splits(self, db, people):
        trip, asha, ben, chen = people

        expense, splits = insert(db, trip, asha, "100.00", {asha: "60", ben: "40"})

        assert db.get_expense(expense.id) == expense
        assert db.list_expense_splits(expense.id) == splits
        assert [s.share_amount for s in splits] == [Decimal("60"), Decimal("40")]

    def test_amounts_round_trip_exactly(self, db, people):
        trip, asha, ben, chen = people

        expense, _ = insert(db, trip, asha, "0.10", {asha: "0.10"})

        stored = db.get_expense(expense.id)
        assert stored.amount == Decimal("0.10")
        assert str(stored.amount) == "0.10"

    def test_list_most_recent_date_first(self, db, people):
        trip, asha, ben, chen = people
        early, _ = insert(db, trip, asha, "10", {asha: "10"}, day=1)
        late, _ = insert(db, trip, asha, "10", {asha: "10"}, day=9)

        assert [e.id for e in db.list_expenses(trip.id)] == [late.id, early.id]

    def test_replace_swaps_splits(self, db, people):
        trip, asha, ben, chen = people
        expense, old_splits = insert(db, trip, asha, "90", {asha: "45", ben: "45"})

        updated, new_splits = db.replace_expense(
            expense_id=expense.id,
            name="Bun cha",
            amount=Decimal("60"),
            currency="VND",
            paid_by_member_id=ben.id,
            expense_date=date(2026, 5, 2),
            category="Food",
            shares={chen.id: Decimal("60")},
        )

        assert updated.id == expense.id
        assert updated.created_at == expense.created_at
        assert db.get_expense(expense.id).name == "Bun cha"
        assert db.get_expense(expense.id).paid_by_member_id == ben.id
        assert db.list_expense_splits(expense.id) == new_splits
        assert {s.id for s in new_splits}.isdisjoint({s.id for s in old_splits})

    def test_replace_missing_expense(self, db, people):
        trip, asha, ben, chen = people

        with pytest.raises(ExpenseNotFoundError):
            db.replace_expense(
                expense_id="missing",
                name="x",
                amount=Decimal("1"),
                currency="VND",
                paid_by_member_id=asha.id,
                expense_date=date(2026, 5, 2),
                category="Other",
                shares={asha.id: Decimal("1")},
            )

    def test_failed_split_insert_rolls_back_expense(self, db, people):
        trip, asha, ben, chen = people

        with pytest.raises(sqlite3.IntegrityError):
            db.insert_expense(
                trip_id=trip.id,
                name="Broken",
                amount=Decimal("10"),
                currency="VND",
                paid_by_member_id=asha.id,
                expense_date=date(2026, 5, 1),
                category="Other",
                shares={"not-a-member": Decimal("10")},
            )

        assert db.list_expenses(trip.id) == []

    def test_delete_expense_cascades(self, db, people):
        trip, asha, ben, chen = people
        expense, _ = insert(db, trip, asha, "90", {asha: "45", ben: "45"})

        assert db.delete_expense(expense.id)

        assert db.get_expense(expense.id) is None
        assert db.list_expense_splits(expense.id) == []
        assert not db.delete_expense(expense.id)

    def test_find_by_prefix(self, db, people):
        trip, asha, ben, chen = people
        expense, _ = insert(db, trip, asha, "10", {asha: "10"})

        assert db.find_expenses_by_prefix(expense.id[:6]) == [expense]
        assert db.find_expenses_by_prefix("%") == []

    def test_snapshot(self, db, people):
        trip, asha, ben, chen = people
        expense, splits = insert(db, trip, asha, "10", {asha: "5", ben: "5"})
        other = db.create_trip("Elsewhere")
        db.add_member(other.id, "Dana")

        members, expenses, all_splits = db.snapshot(trip.id)

        assert [m.name for m in members] == ["Asha", "Ben", "Chen"]
        assert expenses == [expense]
        assert all_splits == splits
