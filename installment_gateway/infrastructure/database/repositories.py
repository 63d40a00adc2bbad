"""Data access layer for accounts, services and payments"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import flag_modified

from installment_gateway.infrastructure.database.models import (
    AccountRecord,
    PaymentRecord,
    ServiceRecord,
    TrancheRecord,
)
from installment_gateway.domain.models import (
    Account,
    InstallmentPolicy,
    Payment,
    PaymentStatus,
    PaymentType,
    Role,
    Service,
    Split,
    Tranche,
    TrancheStatus,
)
from installment_gateway.utils.date_utils import ensure_utc


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def account_to_domain(record: AccountRecord) -> Account:
    return Account(
        id=record.id,
        role=Role(record.role),
        is_active=record.is_active,
        is_verified=record.is_verified,
        is_suspicious=record.is_suspicious,
        installment_policy=InstallmentPolicy(
            enabled=record.installments_enabled,
            splits=[
                Split(percentage=s["percentage"], due_offset_days=s.get("due_offset_days", 0))
                for s in (record.installment_splits or [])
            ],
            updated_by=record.policy_updated_by,
            updated_at=_utc(record.policy_updated_at),
        ),
    )


def tranche_to_domain(record: TrancheRecord) -> Tranche:
    return Tranche(
        installment_number=record.installment_number,
        percentage=record.percentage,
        amount_cents=record.amount_cents,
        due_date=record.due_date,
        status=TrancheStatus(record.status),
        transaction_ref=record.transaction_ref,
        submitted_at=_utc(record.submitted_at),
        approved_at=_utc(record.approved_at),
        paid_at=_utc(record.paid_at),
        admin_notes=record.admin_notes,
        resubmission_count=record.resubmission_count,
        payment_id=record.payment_id,
    )


def payment_to_domain(record: PaymentRecord) -> Payment:
    return Payment(
        id=record.id,
        account_id=record.account_id,
        service_id=record.service_id,
        type=PaymentType(record.payment_type),
        amount_cents=record.amount_cents,
        tranches=[tranche_to_domain(t) for t in record.tranches],
        status=PaymentStatus(record.status),
        amount_paid_cents=record.amount_paid_cents,
        start_date=_utc(record.start_date),
        end_date=_utc(record.end_date),
        is_service_completed=record.is_service_completed,
        created_at=_utc(record.created_at),
    )


class AccountRepository:
    """Repository for accounts and their installment policies"""

    def __init__(self, db: Session):
        self.db = db

    def create_account(
        self,
        account_id: str,
        role: Role = Role.CUSTOMER,
        is_verified: bool = False,
    ) -> AccountRecord:
        db_account = AccountRecord(
            id=account_id,
            role=role.value,
            is_active=True,
            is_verified=is_verified,
            is_suspicious=False,
            installments_enabled=False,
            installment_splits=[],
        )
        self.db.add(db_account)
        self.db.flush()
        return db_account

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        return self.db.query(AccountRecord).filter(AccountRecord.id == account_id).first()

    def get_account_for_update(self, account_id: str) -> Optional[AccountRecord]:
        return (
            self.db.query(AccountRecord)
            .filter(AccountRecord.id == account_id)
            .with_for_update()
            .first()
        )

    def save(self, record: AccountRecord, account: Account) -> AccountRecord:
        """Write flag and policy fields back; identity and role are not touched"""
        policy = account.installment_policy
        record.is_active = account.is_active
        record.is_verified = account.is_verified
        record.is_suspicious = account.is_suspicious
        record.installments_enabled = policy.enabled
        record.installment_splits = [
            {"percentage": s.percentage, "due_offset_days": s.due_offset_days} for s in policy.splits
        ]
        record.policy_updated_by = policy.updated_by
        record.policy_updated_at = policy.updated_at
        self.db.flush()
        return record


class ServiceRepository:
    """Read access to the service catalogue"""

    def __init__(self, db: Session):
        self.db = db

    def create_service(
        self,
        service_id: str,
        price_cents: int,
        name: str = "",
        duration_label: str = "",
    ) -> ServiceRecord:
        db_service = ServiceRecord(
            id=service_id,
            name=name,
            price_cents=price_cents,
            duration_label=duration_label,
            is_active=True,
        )
        self.db.add(db_service)
        self.db.flush()
        return db_service

    def get_service(self, service_id: str) -> Optional[Service]:
        record = self.db.query(ServiceRecord).filter(ServiceRecord.id == service_id).first()
        if record is None:
            return None
        return Service(
            id=record.id,
            price_cents=record.price_cents,
            name=record.name,
            duration_label=record.duration_label,
            is_active=record.is_active,
        )


class PaymentRepository:
    """Repository for payments and their tranches"""

    def __init__(self, db: Session):
        self.db = db

    def create_payment(self, payment: Payment, now: datetime) -> PaymentRecord:
        """Persist a new payment with its tranches"""
        db_payment = PaymentRecord(
            account_id=payment.account_id,
            service_id=payment.service_id,
            payment_type=payment.type.value,
            status=payment.status.value,
            amount_cents=payment.amount_cents,
            amount_paid_cents=payment.amount_paid_cents,
            is_service_completed=False,
            updated_at=now,
        )
        self.db.add(db_payment)
        self.db.flush()

        for tranche in payment.tranches:
            db_payment.tranches.append(
                TrancheRecord(
                    installment_number=tranche.installment_number,
                    percentage=tranche.percentage,
                    amount_cents=tranche.amount_cents,
                    due_date=tranche.due_date,
                    status=tranche.status.value,
                    transaction_ref=tranche.transaction_ref,
                    submitted_at=tranche.submitted_at,
                    resubmission_count=tranche.resubmission_count,
                )
            )
        self.db.flush()
        return db_payment

    def get_payment(self, payment_id: uuid.UUID) -> Optional[PaymentRecord]:
        """Fetch payment with tranches"""
        return (
            self.db.query(PaymentRecord)
            .options(selectinload(PaymentRecord.tranches))
            .filter(PaymentRecord.id == payment_id)
            .first()
        )

    def get_payment_for_update(self, payment_id: uuid.UUID) -> Optional[PaymentRecord]:
        """Fetch payment holding a row lock until the transaction ends"""
        return (
            self.db.query(PaymentRecord)
            .filter(PaymentRecord.id == payment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def list_payments(
        self,
        account_id: Optional[str] = None,
        status: Optional[PaymentStatus] = None,
        limit: int = 100,
    ) -> List[PaymentRecord]:
        query = self.db.query(PaymentRecord).options(selectinload(PaymentRecord.tranches))
        if account_id is not None:
            query = query.filter(PaymentRecord.account_id == account_id)
        if status is not None:
            query = query.filter(PaymentRecord.status == status.value)
        return query.order_by(PaymentRecord.created_at.desc()).limit(limit).all()

    def list_open_installment_payments(self) -> List[PaymentRecord]:
        """Installment payments that still have unsettled tranches"""
        return (
            self.db.query(PaymentRecord)
            .options(selectinload(PaymentRecord.tranches))
            .filter(PaymentRecord.payment_type == PaymentType.INSTALLMENT.value)
            .filter(PaymentRecord.status != PaymentStatus.APPROVED.value)
            .all()
        )

    def list_all_payments(self) -> List[PaymentRecord]:
        return self.db.query(PaymentRecord).options(selectinload(PaymentRecord.tranches)).all()

    def transaction_ref_in_use(self, transaction_ref: str) -> bool:
        count = (
            self.db.query(func.count(TrancheRecord.id))
            .filter(TrancheRecord.transaction_ref == transaction_ref)
            .scalar()
        )
        return count > 0

    def save(self, record: PaymentRecord, payment: Payment, now: datetime) -> PaymentRecord:
        """
        Write derived payment fields and tranche state back.

        updated_at always changes so the version counter is bumped even when
        only tranche rows differ.
        """
        record.status = payment.status.value
        record.amount_paid_cents = payment.amount_paid_cents
        record.start_date = payment.start_date
        record.end_date = payment.end_date
        record.is_service_completed = payment.is_service_completed
        record.updated_at = now
        flag_modified(record, "updated_at")

        by_number = {t.installment_number: t for t in payment.tranches}
        for db_tranche in record.tranches:
            tranche = by_number[db_tranche.installment_number]
            db_tranche.status = tranche.status.value
            db_tranche.transaction_ref = tranche.transaction_ref
            db_tranche.submitted_at = tranche.submitted_at
            db_tranche.approved_at = tranche.approved_at
            db_tranche.paid_at = tranche.paid_at
            db_tranche.admin_notes = tranche.admin_notes
            db_tranche.resubmission_count = tranche.resubmission_count

        self.db.flush()
        return record
