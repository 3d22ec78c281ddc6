"""Balance computation and settle-up planning.

Everything here is a pure function of its arguments: no I/O, no config, no
mutation of the records passed in. Amounts in different currencies are never
combined.
"""

import logging
from collections.abc import Mapping, Sequence
from decimal import Decimal

from ..models import CurrencyLedger, Expense, ExpenseSplit, Member, Settlement
from .money import TOLERANCE, ZERO, is_negligible

logger = logging.getLogger(__name__)

UNKNOWN_MEMBER = "Unknown"


def compute_balances(
    members: Sequence[Member],
    expenses: Sequence[Expense],
    splits: Sequence[ExpenseSplit],
) -> dict[str, dict[str, Decimal]]:
    """
    Compute each member's net balance per currency.

    A payer's balance goes up by the expense amount; each split member's
    balance goes down by their share. Positive means the member is owed money.

    Args:
        members: The trip's members
        expenses: The trip's expenses
        splits: Splits for those expenses (others are ignored)

    Returns:
        Currency -> (member id -> balance). Currencies appear in the order
        they're first used; members in the given order, with any ids missing
        from ``members`` appended.
    """
    splits_by_expense: dict[str, list[ExpenseSplit]] = {}
    for split in splits:
        splits_by_expense.setdefault(split.expense_id, []).append(split)

    balances: dict[str, dict[str, Decimal]] = {}
    for expense in expenses:
        ledger = balances.get(expense.currency)
        if ledger is None:
            ledger = {member.id: ZERO for member in members}
            balances[expense.currency] = ledger

        payer = expense.paid_by_member_id
        ledger[payer] = ledger.get(payer, ZERO) + expense.amount

        for split in splits_by_expense.get(expense.id, []):
            ledger[split.member_id] = (
                ledger.get(split.member_id, ZERO) - split.share_amount
            )

    return balances


def minimize_settlements(
    balances: Mapping[str, Decimal],
    currency: str,
    member_names: Mapping[str, str] | None = None,
) -> list[Settlement]:
    """
    Plan payments that zero out one currency's balances.

    Greedy largest-first matching: the biggest debtor pays the biggest
    creditor as much as either side allows, then whichever side is cleared
    moves on. Produces at most ``len(balances) - 1`` payments. Ties are broken
    by member id so the plan is reproducible.

    Args:
        balances: Member id -> balance for a single currency
        currency: Currency code stamped on each settlement
        member_names: Member id -> display name

    Returns:
        Settlements in payment order; empty when everyone is settled
    """
    names = member_names or {}

    # Working copies as [member_id, remaining]; the caller's mapping is untouched
    debtors = sorted(
        (
            [member_id, balance]
            for member_id, balance in balances.items()
            if balance < -TOLERANCE
        ),
        key=lambda entry: (entry[1], entry[0]),
    )
    creditors = sorted(
        (
            [member_id, balance]
            for member_id, balance in balances.items()
            if balance > TOLERANCE
        ),
        key=lambda entry: (-entry[1], entry[0]),
    )

    settlements: list[Settlement] = []
    i = 0
    j = 0
    while i < len(debtors) and j < len(creditors):
        debtor = debtors[i]
        creditor = creditors[j]

        amount = min(abs(debtor[1]), creditor[1])
        if amount > TOLERANCE:
            settlements.append(
                Settlement(
                    from_member_id=debtor[0],
                    from_name=names.get(debtor[0], UNKNOWN_MEMBER),
                    to_member_id=creditor[0],
                    to_name=names.get(creditor[0], UNKNOWN_MEMBER),
                    amount=amount,
                    currency=currency,
                )
            )

        debtor[1] += amount
        creditor[1] -= amount

        if is_negligible(debtor[1]):
            i += 1
        if is_negligible(creditor[1]):
            j += 1

    return settlements


def compute_balances_and_settlements(
    members: Sequence[Member],
    expenses: Sequence[Expense],
    splits: Sequence[ExpenseSplit],
) -> dict[str, CurrencyLedger]:
    """
    Compute balances and a settle-up plan for every currency in use.

    Returns:
        Currency -> CurrencyLedger. Empty when there are no expenses.
    """
    names = {member.id: member.name for member in members}

    ledgers: dict[str, CurrencyLedger] = {}
    for currency, balances in compute_balances(members, expenses, splits).items():
        settlements = minimize_settlements(balances, currency, names)
        ledgers[currency] = CurrencyLedger(
            currency=currency, balances=balances, settlements=settlements
        )
        logger.debug(
            f"{currency}: {len(balances)} balances, {len(settlements)} settlements"
        )

    return ledgers
