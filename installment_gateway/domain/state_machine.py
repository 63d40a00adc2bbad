"""Tranche lifecycle transitions

    pending ──submit──▶ submitted ──approve──▶ approved ──mark_paid──▶ paid
                            │  ▲
                     reject │  │ submit (resubmission)
                            ▼  │
                          rejected

Guards are checked before anything is written, so a refused transition
leaves the tranche untouched.
"""

from datetime import datetime
from typing import Optional

from installment_gateway.domain.exceptions import (
    DuplicateSubmissionError,
    IllegalTransitionError,
    SequenceError,
    ValidationError,
)
from installment_gateway.domain.models import Decision, Tranche, TrancheStatus

# transition name -> states it may start from
ALLOWED_SOURCES = {
    "submit": frozenset({TrancheStatus.PENDING, TrancheStatus.REJECTED}),
    "approve": frozenset({TrancheStatus.SUBMITTED}),
    "reject": frozenset({TrancheStatus.SUBMITTED}),
    "mark_paid": frozenset({TrancheStatus.APPROVED}),
}


def _guard(tranche: Tranche, transition: str) -> None:
    if tranche.status not in ALLOWED_SOURCES[transition]:
        raise IllegalTransitionError(
            f"Cannot {transition} tranche {tranche.installment_number} in status '{tranche.status.value}'",
            entity_id=tranche.label,
        )


def submit(
    tranche: Tranche,
    transaction_ref: str,
    now: datetime,
    previous: Optional[Tranche] = None,
) -> Tranche:
    """
    Record the customer's transaction reference against a tranche.

    Raises:
        DuplicateSubmissionError: Same reference already submitted for this tranche
        IllegalTransitionError: Tranche is not pending or rejected
        ValidationError: Empty transaction reference
        SequenceError: Previous tranche is not yet approved or paid
    """
    ref = (transaction_ref or "").strip()

    if tranche.status == TrancheStatus.SUBMITTED and ref and tranche.transaction_ref == ref:
        raise DuplicateSubmissionError(
            f"Transaction '{ref}' already submitted for tranche {tranche.installment_number}",
            entity_id=tranche.label,
        )

    _guard(tranche, "submit")

    if not ref:
        raise ValidationError("Transaction reference is required", entity_id=tranche.label)

    if previous is not None and not previous.is_settled:
        raise SequenceError(
            f"Tranche {previous.installment_number} must be approved before "
            f"tranche {tranche.installment_number} can be submitted",
            entity_id=tranche.label,
        )

    resubmission = tranche.status == TrancheStatus.REJECTED

    tranche.transaction_ref = ref
    tranche.submitted_at = now
    tranche.status = TrancheStatus.SUBMITTED
    if resubmission:
        tranche.resubmission_count += 1
        tranche.admin_notes = None

    return tranche


def adjudicate(
    tranche: Tranche,
    decision: Decision | str,
    notes: Optional[str],
    now: datetime,
) -> Tranche:
    """
    Apply an administrator's verdict to a submitted tranche.

    Rejection keeps the transaction reference for audit but clears the
    submission time, so the customer can resubmit.

    Raises:
        ValidationError: Unknown decision
        IllegalTransitionError: Tranche is not submitted
    """
    try:
        decision = Decision(decision)
    except ValueError:
        raise ValidationError(f"Unknown decision '{decision}'", entity_id=tranche.label)

    if decision == Decision.APPROVED:
        _guard(tranche, "approve")
        tranche.status = TrancheStatus.APPROVED
        tranche.approved_at = now
    else:
        _guard(tranche, "reject")
        tranche.status = TrancheStatus.REJECTED
        tranche.submitted_at = None

    tranche.admin_notes = notes
    return tranche


def mark_paid(tranche: Tranche, now: datetime) -> Tranche:
    """Close an approved tranche in the ledger"""
    _guard(tranche, "mark_paid")
    tranche.status = TrancheStatus.PAID
    tranche.paid_at = now
    return tranche
