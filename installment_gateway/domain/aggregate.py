"""Payment aggregate - derives purchase status and totals from tranche state"""

import copy
from datetime import datetime
from typing import Callable, List, Optional

from installment_gateway.domain import state_machine
from installment_gateway.domain.exceptions import ReconciliationError
from installment_gateway.domain.models import (
    Decision,
    Payment,
    PaymentStatus,
    PaymentType,
    Tranche,
    TrancheStatus,
)


def derive_status(tranches: List[Tranche]) -> PaymentStatus:
    """
    Purchase status from tranche states.

    - approved: every tranche approved or paid
    - rejected: current tranche rejected and no later tranche has moved
    - partial: at least one tranche approved or paid
    - pending: otherwise
    """
    if tranches and all(t.is_settled for t in tranches):
        return PaymentStatus.APPROVED

    settled = [t for t in tranches if t.is_settled]
    current = next((t for t in tranches if not t.is_settled), None)

    if current is not None and current.status == TrancheStatus.REJECTED:
        later = [t for t in tranches if t.installment_number > current.installment_number]
        if all(t.status == TrancheStatus.PENDING for t in later):
            return PaymentStatus.REJECTED

    if settled:
        return PaymentStatus.PARTIAL

    return PaymentStatus.PENDING


def check_invariants(payment: Payment) -> None:
    """
    Raises:
        ReconciliationError: Tranche schedule does not describe the payment
    """
    entity_id = str(payment.id) if payment.id else None
    tranches = payment.tranches

    numbers = [t.installment_number for t in tranches]
    if numbers != list(range(1, len(tranches) + 1)):
        raise ReconciliationError(f"Installment numbers must run 1..n, got {numbers}", entity_id=entity_id)

    if payment.type == PaymentType.FULL and (len(tranches) != 1 or tranches[0].percentage != 100):
        raise ReconciliationError("Full payment must have a single 100% tranche", entity_id=entity_id)

    if payment.type == PaymentType.INSTALLMENT and len(tranches) < 2:
        raise ReconciliationError("Installment payment needs at least two tranches", entity_id=entity_id)

    if sum(t.percentage for t in tranches) != 100:
        raise ReconciliationError("Tranche percentages must total 100", entity_id=entity_id)

    total = sum(t.amount_cents for t in tranches)
    if total != payment.amount_cents:
        raise ReconciliationError(
            f"Tranche amounts total {total}, expected {payment.amount_cents}",
            entity_id=entity_id,
        )


def recompute(payment: Payment) -> Payment:
    """Refresh amount paid and status; approved tranches count as paid"""
    check_invariants(payment)
    payment.amount_paid_cents = sum(t.amount_cents for t in payment.tranches if t.is_settled)
    payment.status = derive_status(payment.tranches)
    return payment


class PaymentAggregate:
    """
    Owns the tranches of one payment.

    Every transition is followed by a recomputation. If either step fails the
    payment is restored to its state before the call and the error propagates.
    """

    def __init__(self, payment: Payment):
        self.payment = payment

    def submit(self, installment_number: int, transaction_ref: str, now: datetime) -> Tranche:
        tranche = self.payment.tranche(installment_number)
        previous = self.payment.previous_tranche(installment_number)
        return self._apply(lambda: state_machine.submit(tranche, transaction_ref, now, previous))

    def adjudicate(
        self,
        installment_number: int,
        decision: Decision | str,
        notes: Optional[str],
        now: datetime,
    ) -> Tranche:
        tranche = self.payment.tranche(installment_number)
        return self._apply(lambda: state_machine.adjudicate(tranche, decision, notes, now))

    def mark_paid(self, installment_number: int, now: datetime) -> Tranche:
        tranche = self.payment.tranche(installment_number)
        return self._apply(lambda: state_machine.mark_paid(tranche, now))

    def _apply(self, transition: Callable[[], Tranche]) -> Tranche:
        snapshot = copy.deepcopy(self.payment.tranches)
        status, amount_paid = self.payment.status, self.payment.amount_paid_cents
        try:
            tranche = transition()
            recompute(self.payment)
        except Exception:
            # Restore in place so callers holding tranche references see the rollback
            for current, saved in zip(self.payment.tranches, snapshot):
                current.__dict__.update(saved.__dict__)
            self.payment.status = status
            self.payment.amount_paid_cents = amount_paid
            raise
        return tranche
