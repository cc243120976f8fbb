"""Exception taxonomy for stock reconciliation and commits."""

from __future__ import annotations

from decimal import Decimal


class LedgerError(Exception):
    """Base class for every stock ledger error."""


class UnknownItem(LedgerError, KeyError):
    """The (kind, id) key is not part of the session catalog."""

    def __init__(self, key: tuple[str, int]) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        kind, item_id = self.key
        return f"Unknown {kind} #{item_id}"


class InsufficientStock(LedgerError):
    """A reservation or set would exceed the available ceiling."""

    def __init__(self, key: tuple[str, int], requested: Decimal, ceiling: Decimal) -> None:
        super().__init__(key, requested, ceiling)
        self.key = key
        self.requested = requested
        self.ceiling = ceiling

    def __str__(self) -> str:
        return f"Only {self.ceiling} available"


class BelowFloor(LedgerError):
    """A delta would drop below the previously committed baseline."""

    def __init__(self, key: tuple[str, int], requested: Decimal, floor: Decimal) -> None:
        super().__init__(key, requested, floor)
        self.key = key
        self.requested = requested
        self.floor = floor


class InvalidQuantityInput(LedgerError, ValueError):
    """Text that is not a non-negative number of the right shape."""

    def __init__(self, text: str) -> None:
        super().__init__(text)
        self.text = text


class PaymentError(LedgerError, ValueError):
    """Checkout payment details that cannot close the order."""


class CommitFailure(LedgerError):
    """The system of record rejected or never answered a commit."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StaleCeiling(CommitFailure):
    """The local catalog version no longer matches the system of record."""


class CommitInFlight(LedgerError):
    """A second commit was requested while one is still running."""
