"""Split validation: turn an expense total into per-member shares."""

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal

from ..exceptions import (
    InvalidAmountError,
    InvalidShareError,
    NoParticipantsError,
    SplitMismatchError,
)
from ..models import SplitMode
from .money import TOLERANCE, ZERO, parse_decimal, quantize_cents

logger = logging.getLogger(__name__)


def parse_total(total_amount: object) -> Decimal:
    """
    Parse an expense total.

    Raises:
        InvalidAmountError: If the amount isn't a finite positive decimal
    """
    total = parse_decimal(total_amount)
    if total is None or total <= ZERO:
        raise InvalidAmountError(total_amount)
    return total


def compute_splits(
    total_amount: object,
    currency: str,
    mode: SplitMode,
    participants: Iterable[str],
    custom_shares: Mapping[str, object] | None = None,
) -> dict[str, Decimal]:
    """
    Compute the shares to store for one expense.

    Equal mode gives every participant ``total / count`` rounded to cents on
    its own. The rounded shares may not add back up to the total (100.00 over
    three people is 33.33 each); that residue is left in place and logged.

    Custom mode takes the requested shares as given and only checks that
    they add up to the total within one cent.

    Args:
        total_amount: Expense total (str, Decimal, int or float)
        currency: Currency code, used in error messages
        mode: "equal" or "custom"
        participants: Member ids sharing the expense
        custom_shares: Member id -> requested share, required for custom mode

    Returns:
        Member id -> share, rounded to cents, in participant order

    Raises:
        InvalidAmountError: Total isn't a finite positive decimal
        NoParticipantsError: No participants
        InvalidShareError: A custom share is missing, malformed or negative
        SplitMismatchError: Custom shares don't add up to the total
    """
    total = parse_total(total_amount)

    # dict.fromkeys dedupes while keeping first-seen order
    members = list(dict.fromkeys(participants))
    if not members:
        raise NoParticipantsError()

    if mode == "equal":
        share = quantize_cents(total / len(members))
        shares = {member_id: share for member_id in members}

        residue = split_residue(total, shares.values())
        if residue != ZERO:
            logger.info(
                f"Equal split of {currency} {total} over {len(members)} "
                f"members leaves residue {residue}"
            )
        return shares

    if mode == "custom":
        requested = custom_shares or {}
        raw: dict[str, Decimal] = {}
        for member_id in members:
            if member_id not in requested:
                raise InvalidShareError(member_id)
            value = parse_decimal(requested[member_id])
            if value is None or value < ZERO:
                raise InvalidShareError(member_id, requested[member_id])
            raw[member_id] = value

        ignored = set(requested) - set(members)
        if ignored:
            logger.debug(f"Ignoring shares for non-participants: {sorted(ignored)}")

        allocated = sum(raw.values(), ZERO)
        if abs(allocated - total) > TOLERANCE:
            raise SplitMismatchError(total, allocated, currency)

        return {member_id: quantize_cents(value) for member_id, value in raw.items()}

    raise ValueError(f"Unknown split mode: {mode!r}")


def split_residue(total: Decimal, shares: Iterable[Decimal]) -> Decimal:
    """Amount of the total not covered by the shares (positive = under-allocated)."""
    return total - sum(shares, ZERO)


def infer_split_mode(shares: Iterable[Decimal]) -> SplitMode:
    """
    Guess how an existing expense was split.

    An expense whose shares are all identical is treated as an equal split;
    anything else (including no shares) is custom.
    """
    distinct = set(shares)
    return "equal" if len(distinct) == 1 else "custom"
