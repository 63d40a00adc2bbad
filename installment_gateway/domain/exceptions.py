"""Domain-specific exceptions"""

from typing import Optional


class DomainException(Exception):
    """Base exception for domain layer

    Every subclass carries a machine-readable ``code`` and the id of the
    entity the failure is about, so callers can react without parsing
    messages.
    """

    code = "domain_error"

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


class ValidationError(DomainException):
    """Input failed validation (bad percentages, empty transaction reference, ...)"""

    code = "validation_error"


class InvalidSplitError(ValidationError):
    """Installment split schedule is malformed"""

    code = "invalid_split"


class IllegalTransitionError(DomainException):
    """Tranche is not in a state that allows the requested transition"""

    code = "illegal_transition"


class SequenceError(DomainException):
    """Tranche submitted before the previous tranche was settled"""

    code = "sequence_error"


class DuplicateSubmissionError(DomainException):
    """Transaction reference was already recorded"""

    code = "duplicate_submission"


class NotFoundError(DomainException):
    """Unknown payment, tranche, account or service"""

    code = "not_found"


class ConcurrentModificationError(DomainException):
    """Payment was modified by another request in the meantime"""

    code = "concurrent_modification"


class ReconciliationError(DomainException):
    """Payment totals or tranche schedule no longer add up"""

    code = "reconciliation_error"
