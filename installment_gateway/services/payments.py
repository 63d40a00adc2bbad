"""Payment reconciliation operations used by the customer app and the admin console"""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from installment_gateway.domain.aggregate import PaymentAggregate, recompute
from installment_gateway.domain.entitlement import phase_of
from installment_gateway.domain.exceptions import (
    DuplicateSubmissionError,
    NotFoundError,
    ValidationError,
)
from installment_gateway.domain.installments import plan_for_policy
from installment_gateway.domain.models import (
    Decision,
    Payment,
    PaymentStats,
    PaymentStatus,
    PaymentType,
    Phase,
    Tranche,
)
from installment_gateway.domain.suspicion import overdue_tranche
from installment_gateway.infrastructure.database.models import PaymentRecord
from installment_gateway.infrastructure.database.repositories import (
    AccountRepository,
    PaymentRepository,
    ServiceRepository,
    account_to_domain,
    payment_to_domain,
)
from installment_gateway.infrastructure.database.session import unit_of_work
from installment_gateway.infrastructure.observability.logging import log_transition
from installment_gateway.infrastructure.observability.metrics import record_payment_created, record_transition
from installment_gateway.utils.date_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Reconciliation boundary for payments.

    Each public method is one transaction: it either commits completely or
    rolls back and raises a DomainException subclass. Tranche transitions
    lock the payment row, and the payment's version counter rejects writes
    based on stale reads.
    """

    def __init__(self, db: Session):
        self.db = db
        self.payments = PaymentRepository(db)
        self.accounts = AccountRepository(db)
        self.services = ServiceRepository(db)

    def create_payment(
        self,
        account_id: str,
        service_id: str,
        payment_type: PaymentType | str,
        transaction_ref: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Payment:
        """
        Start a purchase and materialize its tranches.

        A non-empty transaction reference is submitted against tranche 1 in
        the same transaction.

        Raises:
            NotFoundError: Unknown account or service
            ValidationError: Inactive account/service, installments not allowed
            DuplicateSubmissionError: Transaction reference already used
        """
        now = ensure_utc(now or utcnow())
        try:
            payment_type = PaymentType(payment_type)
        except ValueError:
            raise ValidationError(f"Unknown payment type '{payment_type}'")

        with unit_of_work(self.db, entity_id=account_id):
            account_record = self.accounts.get_account(account_id)
            if account_record is None:
                raise NotFoundError("Account not found", entity_id=account_id)
            account = account_to_domain(account_record)
            if not account.is_active:
                raise ValidationError("Account is inactive", entity_id=account_id)

            service = self.services.get_service(service_id)
            if service is None:
                raise NotFoundError("Service not found", entity_id=service_id)
            if not service.is_active:
                raise ValidationError("Service is not available for purchase", entity_id=service_id)

            purchase_date = now.date()
            if payment_type == PaymentType.INSTALLMENT:
                if account.is_suspicious:
                    raise ValidationError(
                        "Installment payments are disabled for accounts marked as suspicious",
                        entity_id=account_id,
                    )
                if not account.can_start_installments:
                    raise ValidationError("Installment payments are not enabled for this account", entity_id=account_id)
                policy = account.installment_policy
            else:
                policy = None
            tranches = plan_for_policy(service.price_cents, policy, purchase_date)

            payment = Payment(
                account_id=account_id,
                service_id=service_id,
                type=payment_type,
                amount_cents=service.price_cents,
                tranches=tranches,
            )
            recompute(payment)

            ref = (transaction_ref or "").strip()
            if ref:
                self._ensure_ref_unused(ref, entity_id=account_id)
                PaymentAggregate(payment).submit(1, ref, now)

            record = self.payments.create_payment(payment, now)

        created = payment_to_domain(record)
        record_payment_created(payment_type.value)
        logger.info(
            "Payment created",
            extra={
                "payment_id": str(created.id),
                "account_id": account_id,
                "service_id": service_id,
                "payment_type": payment_type.value,
                "tranche_count": len(created.tranches),
                "amount_cents": created.amount_cents,
            },
        )
        return created

    def submit_tranche(
        self,
        payment_id: uuid.UUID,
        installment_number: int,
        transaction_ref: str,
        now: Optional[datetime] = None,
        request_id: Optional[str] = None,
    ) -> Tranche:
        """
        Customer reports the transaction reference for a tranche.

        Transition guards run first; the reference is then checked against
        every tranche already stored.
        """
        now = ensure_utc(now or utcnow())

        def apply(aggregate: PaymentAggregate) -> Tranche:
            tranche = aggregate.submit(installment_number, transaction_ref, now)
            self._ensure_ref_unused(tranche.transaction_ref, entity_id=tranche.label)
            return tranche

        return self._transition(payment_id, installment_number, "submit", apply, now, request_id)

    def adjudicate_tranche(
        self,
        payment_id: uuid.UUID,
        installment_number: int,
        decision: Decision | str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        request_id: Optional[str] = None,
    ) -> Tranche:
        """Administrator approves or rejects a submitted tranche"""
        now = ensure_utc(now or utcnow())
        try:
            transition = Decision(decision).value
        except ValueError:
            raise ValidationError(f"Unknown decision '{decision}'", entity_id=str(payment_id))

        return self._transition(
            payment_id,
            installment_number,
            transition,
            lambda aggregate: aggregate.adjudicate(installment_number, decision, notes, now),
            now,
            request_id,
        )

    def mark_tranche_paid(
        self,
        payment_id: uuid.UUID,
        installment_number: int,
        now: Optional[datetime] = None,
        request_id: Optional[str] = None,
    ) -> Tranche:
        """Administrator confirms settlement of an approved tranche"""
        now = ensure_utc(now or utcnow())
        return self._transition(
            payment_id,
            installment_number,
            "mark_paid",
            lambda aggregate: aggregate.mark_paid(installment_number, now),
            now,
            request_id,
        )

    def set_service_window(
        self,
        payment_id: uuid.UUID,
        start_date: datetime,
        end_date: datetime,
        now: Optional[datetime] = None,
    ) -> Payment:
        """Set (or correct) the period during which the service is delivered"""
        now = ensure_utc(now or utcnow())
        start_date, end_date = ensure_utc(start_date), ensure_utc(end_date)
        if start_date > end_date:
            raise ValidationError("Service window must start before it ends", entity_id=str(payment_id))

        with unit_of_work(self.db, entity_id=str(payment_id)):
            record = self._locked(payment_id)
            payment = payment_to_domain(record)
            payment.start_date = start_date
            payment.end_date = end_date
            self.payments.save(record, payment, now)

        return payment_to_domain(record)

    def mark_service_completed(self, payment_id: uuid.UUID, now: Optional[datetime] = None) -> Payment:
        """One-way administrator override; repeating it is a no-op"""
        now = ensure_utc(now or utcnow())
        with unit_of_work(self.db, entity_id=str(payment_id)):
            record = self._locked(payment_id)
            payment = payment_to_domain(record)
            if not payment.is_service_completed:
                payment.is_service_completed = True
                self.payments.save(record, payment, now)

        return payment_to_domain(record)

    def get_payment(self, payment_id: uuid.UUID) -> Payment:
        record = self.payments.get_payment(payment_id)
        if record is None:
            raise NotFoundError("Payment not found", entity_id=str(payment_id))
        return payment_to_domain(record)

    def list_payments(
        self,
        account_id: Optional[str] = None,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        return [payment_to_domain(r) for r in self.payments.list_payments(account_id=account_id, status=status)]

    def get_entitlement_phase(self, payment_id: uuid.UUID, now: Optional[datetime] = None) -> Phase:
        return phase_of(self.get_payment(payment_id), now or utcnow())

    def payment_stats(self, now: Optional[datetime] = None) -> PaymentStats:
        """Totals for the admin dashboard"""
        now = ensure_utc(now or utcnow())
        payments = [payment_to_domain(r) for r in self.payments.list_all_payments()]

        def count(status: PaymentStatus) -> int:
            return sum(1 for p in payments if p.status == status)

        return PaymentStats(
            total_payments=len(payments),
            pending=count(PaymentStatus.PENDING),
            partial=count(PaymentStatus.PARTIAL),
            approved=count(PaymentStatus.APPROVED),
            rejected=count(PaymentStatus.REJECTED),
            installment_payments=sum(1 for p in payments if p.type == PaymentType.INSTALLMENT),
            revenue_cents=sum(p.amount_paid_cents for p in payments),
            outstanding_cents=sum(p.amount_due_cents for p in payments if p.status != PaymentStatus.REJECTED),
            overdue_payments=sum(1 for p in payments if overdue_tranche(p, now) is not None),
        )

    def _locked(self, payment_id: uuid.UUID) -> PaymentRecord:
        record = self.payments.get_payment_for_update(payment_id)
        if record is None:
            raise NotFoundError("Payment not found", entity_id=str(payment_id))
        return record

    def _ensure_ref_unused(self, transaction_ref: str, entity_id: Optional[str] = None) -> None:
        if self.payments.transaction_ref_in_use(transaction_ref):
            raise DuplicateSubmissionError(
                f"Transaction '{transaction_ref}' has already been submitted",
                entity_id=entity_id,
            )

    def _transition(
        self,
        payment_id: uuid.UUID,
        installment_number: int,
        name: str,
        apply: Callable[[PaymentAggregate], Tranche],
        now: datetime,
        request_id: Optional[str] = None,
    ) -> Tranche:
        with unit_of_work(self.db, entity_id=str(payment_id)):
            record = self._locked(payment_id)
            aggregate = PaymentAggregate(payment_to_domain(record))
            tranche = apply(aggregate)
            self.payments.save(record, aggregate.payment, now)

        record_transition(name)
        log_transition(
            payment_id=str(payment_id),
            installment_number=installment_number,
            transition=name,
            tranche_status=tranche.status.value,
            payment_status=aggregate.payment.status.value,
            amount_paid_cents=aggregate.payment.amount_paid_cents,
            request_id=request_id,
        )
        return tranche
