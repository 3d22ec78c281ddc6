"""Custom exceptions for TripLedger."""

from decimal import Decimal


class TripLedgerError(Exception):
    """Base exception for all TripLedger errors."""

    pass


class ConfigurationError(TripLedgerError):
    """Raised when configuration is invalid or missing."""

    pass


# ============================================================================
# Split validation
# ============================================================================


class SplitValidationError(TripLedgerError):
    """Base class for errors raised while computing an expense's shares."""

    pass


class InvalidAmountError(SplitValidationError):
    """Raised when an expense total is not a finite positive decimal."""

    def __init__(self, amount: object, message: str | None = None):
        self.amount = amount
        super().__init__(message or f"Invalid amount: {amount!r}")


class NoParticipantsError(SplitValidationError):
    """Raised when an expense is split with nobody."""

    def __init__(self, message: str | None = None):
        super().__init__(message or "Select at least one member to split with")


class InvalidShareError(SplitValidationError):
    """Raised when a custom share is missing, malformed or negative."""

    def __init__(self, member_id: str, share: object = None):
        self.member_id = member_id
        self.share = share
        super().__init__(f"Invalid share for member {member_id}: {share!r}")


class SplitMismatchError(SplitValidationError):
    """Raised when custom shares don't add up to the expense total."""

    def __init__(self, expected: Decimal, allocated: Decimal, currency: str = ""):
        self.expected = expected
        self.allocated = allocated
        self.currency = currency
        prefix = f"{currency} " if currency else ""
        super().__init__(
            f"Split amounts must add up to {prefix}{expected:.2f} "
            f"(got {prefix}{allocated:.2f})"
        )


# ============================================================================
# Lookups
# ============================================================================


class NotFoundError(TripLedgerError):
    """Base class for missing records."""

    kind = "Record"

    def __init__(self, record_id: str, message: str | None = None):
        self.record_id = record_id
        super().__init__(message or f"{self.kind} not found: {record_id}")


class TripNotFoundError(NotFoundError):
    """Raised when a trip id doesn't exist."""

    kind = "Trip"


class MemberNotFoundError(NotFoundError):
    """Raised when a member doesn't exist or doesn't belong to the trip."""

    kind = "Member"


class ExpenseNotFoundError(NotFoundError):
    """Raised when an expense id doesn't exist."""

    kind = "Expense"
