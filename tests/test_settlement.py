"""Tests for balance computation and settle-up planning."""

import random
from datetime import date
from decimal import Decimal

import pytest

from trip_ledger.ledger.settlement import (
    compute_balances,
    compute_balances_and_settlements,
    minimize_settlements,
)
from trip_ledger.ledger.splitter import compute_splits
from trip_ledger.models import Expense, ExpenseSplit, Member

CENT = Decimal("0.01")


# Helper functions for tests
def make_member(id: str, name: str | None = None) -> Member:
    return Member(id=id, trip_id="trip", name=name or id.upper())


def make_expense(
    id: str, payer: str, amount: str | Decimal, currency: str = "USD"
) -> Expense:
    return Expense(
        id=id,
        trip_id="trip",
        name=f"Expense {id}",
        amount=Decimal(amount),
        currency=currency,
        paid_by_member_id=payer,
        date=date(2026, 3, 1),
    )


def make_splits(expense_id: str, shares: dict[str, Decimal | str]) -> list[ExpenseSplit]:
    return [
        ExpenseSplit(
            id=f"{expense_id}-{member_id}",
            expense_id=expense_id,
            member_id=member_id,
            share_amount=Decimal(share),
        )
        for member_id, share in shares.items()
    ]


def apply_settlements(balances, settlements):
    """Return balances after every suggested payment is made."""
    result = dict(balances)
    for settlement in settlements:
        result[settlement.from_member_id] += settlement.amount
        result[settlement.to_member_id] -= settlement.amount
    return result


def random_trip(seed: int, exact: bool):
    """
    Build a random trip.

    With ``exact`` the shares always add up to the amount; otherwise they come
    from equal splits and may leave rounding residue.
    """
    rng = random.Random(seed)
    members = [make_member(f"m{i}", f"Member {i}") for i in range(rng.randint(2, 8))]
    ids = [member.id for member in members]

    expenses = []
    splits = []
    for n in range(rng.randint(1, 15)):
        currency = rng.choice(["USD", "EUR", "INR"])
        cents = rng.randint(1, 50_000)
        amount = Decimal(cents) / 100
        participants = rng.sample(ids, rng.randint(1, len(ids)))

        if exact:
            cuts = sorted(rng.randint(0, cents) for _ in range(len(participants) - 1))
            bounds = [0, *cuts, cents]
            shares = {
                member_id: Decimal(bounds[k + 1] - bounds[k]) / 100
                for k, member_id in enumerate(participants)
            }
        else:
            shares = compute_splits(amount, currency, "equal", participants)

        expense = make_expense(f"e{n}", rng.choice(ids), amount, currency)
        expenses.append(expense)
        splits.extend(make_splits(expense.id, shares))

    return members, expenses, splits


class TestComputeBalances:
    """Net balance per member per currency."""

    def test_payer_is_credited_and_sharers_debited(self):
        members = [make_member("a"), make_member("b"), make_member("c")]
        expenses = [make_expense("e1", "a", "90.00")]
        splits = make_splits("e1", {"a": "30", "b": "30", "c": "30"})

        balances = compute_balances(members, expenses, splits)

        assert balances == {
            "USD": {"a": Decimal("60"), "b": Decimal("-30"), "c": Decimal("-30")}
        }

    def test_members_without_transactions_have_zero_balance(self):
        members = [make_member("a"), make_member("b"), make_member("idle")]
        expenses = [make_expense("e1", "a", "10")]
        splits = make_splits("e1", {"b": "10"})

        balances = compute_balances(members, expenses, splits)

        assert balances["USD"]["idle"] == Decimal("0")
        assert list(balances["USD"]) == ["a", "b", "idle"]

    def test_no_expenses_gives_no_currencies(self):
        members = [make_member("a"), make_member("b")]

        assert compute_balances(members, [], []) == {}

    def test_currencies_in_order_of_first_use(self):
        members = [make_member("a"), make_member("b")]
        expenses = [
            make_expense("e1", "a", "10", "EUR"),
            make_expense("e2", "a", "10", "USD"),
            make_expense("e3", "b", "10", "EUR"),
        ]

        assert list(compute_balances(members, expenses, [])) == ["EUR", "USD"]

    def test_currency_codes_are_not_normalized(self):
        members = [make_member("a")]
        expenses = [
            make_expense("e1", "a", "10", "usd"),
            make_expense("e2", "a", "10", "USD"),
        ]

        assert set(compute_balances(members, expenses, [])) == {"usd", "USD"}

    def test_currency_isolation(self):
        """A EUR expense never moves anyone's USD balance."""
        members = [make_member("a"), make_member("b")]
        usd = [make_expense("e1", "a", "40", "USD")]
        usd_splits = make_splits("e1", {"a": "20", "b": "20"})
        eur = [make_expense("e2", "b", "1000", "EUR")]
        eur_splits = make_splits("e2", {"a": "1000"})

        only_usd = compute_balances(members, usd, usd_splits)
        both = compute_balances(members, usd + eur, usd_splits + eur_splits)

        assert both["USD"] == only_usd["USD"]
        assert both["EUR"] == {"a": Decimal("-1000"), "b": Decimal("1000")}

    def test_ids_missing_from_members_still_get_a_balance(self):
        members = [make_member("a")]
        expenses = [make_expense("e1", "ghost", "10")]
        splits = make_splits("e1", {"a": "10"})

        balances = compute_balances(members, expenses, splits)

        assert balances["USD"] == {"a": Decimal("-10"), "ghost": Decimal("10")}

    def test_splits_of_other_expenses_are_ignored(self):
        members = [make_member("a"), make_member("b")]
        expenses = [make_expense("e1", "a", "10")]
        splits = make_splits("e1", {"b": "10"}) + make_splits("gone", {"a": "99"})

        balances = compute_balances(members, expenses, splits)

        assert balances["USD"] == {"a": Decimal("10"), "b": Decimal("-10")}


class TestMinimizeSettlements:
    """Greedy largest-first debtor/creditor matching."""

    def test_two_debtors_one_creditor(self):
        balances = {"A": Decimal("-30"), "B": Decimal("-10"), "C": Decimal("40")}

        settlements = minimize_settlements(balances, "USD")

        assert [(s.from_member_id, s.to_member_id, s.amount) for s in settlements] == [
            ("A", "C", Decimal("30")),
            ("B", "C", Decimal("10")),
        ]
        assert all(s.currency == "USD" for s in settlements)
        assert all(b == 0 for b in apply_settlements(balances, settlements).values())

    def test_largest_creditor_is_paid_first(self):
        balances = {"A": Decimal("-50"), "B": Decimal("20"), "C": Decimal("30")}

        settlements = minimize_settlements(balances, "USD")

        assert [(s.from_member_id, s.to_member_id, s.amount) for s in settlements] == [
            ("A", "C", Decimal("30")),
            ("A", "B", Decimal("20")),
        ]

    def test_chain_of_partial_payments(self):
        balances = {
            "A": Decimal("-70"),
            "B": Decimal("-30"),
            "C": Decimal("60"),
            "D": Decimal("40"),
        }

        settlements = minimize_settlements(balances, "EUR")

        assert [(s.from_member_id, s.to_member_id, s.amount) for s in settlements] == [
            ("A", "C", Decimal("60")),
            ("A", "D", Decimal("10")),
            ("B", "D", Decimal("30")),
        ]

    def test_ties_are_broken_by_member_id(self):
        balances = {
            "b": Decimal("-10"),
            "a": Decimal("-10"),
            "d": Decimal("10"),
            "c": Decimal("10"),
        }

        settlements = minimize_settlements(balances, "USD")

        assert [(s.from_member_id, s.to_member_id) for s in settlements] == [
            ("a", "c"),
            ("b", "d"),
        ]

    def test_balances_within_a_cent_are_settled(self):
        balances = {"A": Decimal("-0.01"), "B": Decimal("0.01"), "C": Decimal("0")}

        assert minimize_settlements(balances, "USD") == []

    def test_everyone_at_zero_is_settled(self):
        assert minimize_settlements({"A": Decimal("0"), "B": Decimal("0")}, "USD") == []

    def test_empty_balances(self):
        assert minimize_settlements({}, "USD") == []

    def test_names_are_attached(self):
        balances = {"a": Decimal("-5"), "b": Decimal("5")}

        [settlement] = minimize_settlements(balances, "INR", {"a": "Asha", "b": "Ben"})

        assert settlement.from_name == "Asha"
        assert settlement.to_name == "Ben"

    def test_unknown_names_fall_back(self):
        [settlement] = minimize_settlements(
            {"a": Decimal("-5"), "b": Decimal("5")}, "INR"
        )

        assert settlement.from_name == "Unknown"
        assert settlement.to_name == "Unknown"

    def test_input_balances_are_not_modified(self):
        balances = {"A": Decimal("-30"), "B": Decimal("30")}

        minimize_settlements(balances, "USD")

        assert balances == {"A": Decimal("-30"), "B": Decimal("30")}


class TestComputeBalancesAndSettlements:
    """The combined per-currency view."""

    def test_empty_trip(self):
        assert compute_balances_and_settlements([make_member("a")], [], []) == {}

    def test_fully_settled_currency_has_empty_plan(self):
        members = [make_member("a"), make_member("b")]
        expenses = [make_expense("e1", "a", "25")]
        splits = make_splits("e1", {"a": "25"})

        ledgers = compute_balances_and_settlements(members, expenses, splits)

        assert ledgers["USD"].settlements == []
        assert ledgers["USD"].is_settled

    def test_ledger_per_currency(self):
        members = [make_member("a", "Asha"), make_member("b", "Ben")]
        expenses = [
            make_expense("e1", "a", "100", "USD"),
            make_expense("e2", "b", "3000", "INR"),
        ]
        splits = make_splits("e1", {"a": "50", "b": "50"}) + make_splits(
            "e2", {"a": "1500", "b": "1500"}
        )

        ledgers = compute_balances_and_settlements(members, expenses, splits)

        [usd] = ledgers["USD"].settlements
        [inr] = ledgers["INR"].settlements
        assert (usd.from_name, usd.to_name, usd.amount, usd.currency) == (
            "Ben",
            "Asha",
            Decimal("50"),
            "USD",
        )
        assert (inr.from_name, inr.to_name, inr.amount, inr.currency) == (
            "Asha",
            "Ben",
            Decimal("1500"),
            "INR",
        )

    def test_inputs_are_not_modified(self):
        members, expenses, splits = random_trip(seed=7, exact=False)
        before = [r.model_dump() for r in (*members, *expenses, *splits)]

        compute_balances_and_settlements(members, expenses, splits)

        assert [r.model_dump() for r in (*members, *expenses, *splits)] == before

    def test_removing_a_member_removes_their_contributions(self):
        """Dropping a member's paid expenses and shares drops their effect."""
        members = [make_member("a"), make_member("b"), make_member("c")]
        expenses = [make_expense("e1", "a", "30"), make_expense("e2", "c", "60")]
        splits = make_splits("e1", {"a": "10", "b": "10", "c": "10"}) + make_splits(
            "e2", {"b": "60"}
        )

        remaining_members = [m for m in members if m.id != "c"]
        remaining_expenses = [e for e in expenses if e.paid_by_member_id != "c"]
        remaining_ids = {e.id for e in remaining_expenses}
        remaining_splits = [
            s for s in splits if s.member_id != "c" and s.expense_id in remaining_ids
        ]

        ledgers = compute_balances_and_settlements(
            remaining_members, remaining_expenses, remaining_splits
        )

        assert ledgers["USD"].balances == {"a": Decimal("20"), "b": Decimal("-10")}
        assert all(
            "c" not in (s.from_member_id, s.to_member_id)
            for s in ledgers["USD"].settlements
        )


class TestSettlementProperties:
    """Invariants checked over randomly generated trips."""

    @pytest.mark.parametrize("seed", range(30))
    def test_exact_shares_conserve_money(self, seed):
        members, expenses, splits = random_trip(seed, exact=True)

        for balances in compute_balances(members, expenses, splits).values():
            assert sum(balances.values()) == 0

    @pytest.mark.parametrize("seed", range(30))
    def test_equal_split_residue_is_bounded(self, seed):
        members, expenses, splits = random_trip(seed, exact=False)

        for currency, balances in compute_balances(members, expenses, splits).items():
            sharers = sum(
                1
                for split in splits
                for expense in expenses
                if split.expense_id == expense.id and expense.currency == currency
            )
            assert abs(sum(balances.values())) <= sharers * CENT

    @pytest.mark.parametrize("seed", range(30))
    def test_at_most_n_minus_one_payments(self, seed):
        members, expenses, splits = random_trip(seed, exact=False)

        for ledger in compute_balances_and_settlements(
            members, expenses, splits
        ).values():
            assert len(ledger.settlements) <= len(ledger.balances) - 1

    @pytest.mark.parametrize("seed", range(30))
    def test_payments_clear_balances(self, seed):
        members, expenses, splits = random_trip(seed, exact=True)

        for ledger in compute_balances_and_settlements(
            members, expenses, splits
        ).values():
            after = apply_settlements(ledger.balances, ledger.settlements)
            for balance in after.values():
                assert abs(balance) <= len(members) * CENT
            for settlement in ledger.settlements:
                assert settlement.amount > CENT

    @pytest.mark.parametrize("seed", range(30))
    def test_recomputing_is_deterministic(self, seed):
        members, expenses, splits = random_trip(seed, exact=False)

        first = compute_balances_and_settlements(members, expenses, splits)
        second = compute_balances_and_settlements(members, expenses, splits)

        assert first == second

    @pytest.mark.parametrize("seed", range(30))
    def test_record_order_does_not_change_the_plan(self, seed):
        members, expenses, splits = random_trip(seed, exact=False)
        rng = random.Random(seed + 1000)
        shuffled_expenses = rng.sample(expenses, len(expenses))
        shuffled_splits = rng.sample(splits, len(splits))

        original = compute_balances_and_settlements(members, expenses, splits)
        shuffled = compute_balances_and_settlements(
            members, shuffled_expenses, shuffled_splits
        )

        assert set(original) == set(shuffled)
        for currency, ledger in original.items():
            assert shuffled[currency].settlements == ledger.settlements
            assert shuffled[currency].balances == ledger.balances

    @pytest.mark.parametrize("seed", range(30))
    def test_currency_isolation(self, seed):
        members, expenses, splits = random_trip(seed, exact=False)

        combined = compute_balances(members, expenses, splits)
        for currency in combined:
            own = [e for e in expenses if e.currency == currency]
            own_ids = {e.id for e in own}
            alone = compute_balances(
                members, own, [s for s in splits if s.expense_id in own_ids]
            )
            assert alone[currency] == combined[currency]
