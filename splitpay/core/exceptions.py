"""Error taxonomy shared by settlement and reconciliation.

Every error carries a customer-safe ``message`` and a stable ``kind`` so
callers can branch on the category without parsing text.  Processor
diagnostics stay in the server logs; they never travel on these objects.
"""

from __future__ import annotations


class SplitPayError(Exception):
    """Base class for all domain errors."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SplitPayError):
    """Bad client input caught before any money moves."""

    kind = "validation"


class ConfigurationError(SplitPayError):
    """Cart items whose owning merchant cannot be charged."""

    kind = "configuration"

    def __init__(self, message: str, invalid_items: list[str] | None = None) -> None:
        super().__init__(message)
        self.invalid_items = invalid_items or []


class ProcessorError(SplitPayError):
    """Transport failure, timeout or an unrecognised processor response."""

    kind = "processor_error"


class ProcessorDecline(SplitPayError):
    """The processor answered and refused this attempt."""

    kind = "processor_decline"


class PartialSettlementFailure(SplitPayError):
    """A later line failed after earlier lines were already captured."""

    kind = "partial_settlement"

    def __init__(self, message: str, voided: list[str], void_failures: list[str]) -> None:
        super().__init__(message)
        self.voided = voided
        self.void_failures = void_failures


class SyncFailure(SplitPayError):
    """Replication into a merchant ledger did not complete."""

    kind = "sync_failure"


class InvalidStatusTransition(SplitPayError):
    """A Sale status change that would move backwards."""

    kind = "invalid_transition"
