"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, StrictBool

from installment_gateway.domain.models import (
    Account,
    Decision,
    Payment,
    PaymentStats,
    PaymentStatus,
    PaymentType,
    Phase,
    Tranche,
    TrancheStatus,
)


class CreatePaymentRequest(BaseModel):
    """Request body for POST /v1/payments"""

    account_id: str = Field(..., min_length=1, description="Purchasing account")
    service_id: str = Field(..., min_length=1, description="Service being purchased")
    payment_type: PaymentType = PaymentType.FULL
    transaction_ref: Optional[str] = Field(None, description="Reference for the first tranche, if already paid")


class SubmitTrancheRequest(BaseModel):
    """Request body for POST /v1/payments/{payment_id}/tranches/{n}/submit"""

    transaction_ref: str = Field(..., min_length=1, description="Externally reported transaction reference")


class AdjudicateTrancheRequest(BaseModel):
    """Request body for POST /v1/admin/payments/{payment_id}/tranches/{n}/adjudicate"""

    decision: Decision
    notes: Optional[str] = Field(None, max_length=2000)


class ServiceWindowRequest(BaseModel):
    """Request body for PUT /v1/admin/payments/{payment_id}/service-window"""

    start_date: datetime
    end_date: datetime


class SplitSchema(BaseModel):
    """One split of an installment schedule; offset defaults to the configured interval"""

    percentage: int = Field(..., gt=0, le=100)
    due_offset_days: Optional[int] = Field(None, ge=0)


class InstallmentPolicyRequest(BaseModel):
    """Request body for PUT /v1/admin/accounts/{account_id}/installment-policy"""

    splits: List[SplitSchema]
    enabled: Optional[StrictBool] = None
    updated_by: str = Field("administrator", min_length=1)


class InstallmentToggleRequest(BaseModel):
    """Request body for PATCH /v1/admin/accounts/{account_id}/installments"""

    enabled: StrictBool
    updated_by: str = Field("administrator", min_length=1)


class SuspicionRequest(BaseModel):
    """Request body for PATCH /v1/admin/accounts/{account_id}/suspicion"""

    is_suspicious: StrictBool
    updated_by: str = Field("administrator", min_length=1)


class SuspicionScanRequest(BaseModel):
    """Request body for POST /v1/admin/suspicion-scan"""

    now: Optional[datetime] = Field(None, description="Evaluation time, defaults to the current time")


class TrancheSchema(BaseModel):
    """Single tranche of a payment"""

    installment_number: int
    percentage: int
    amount_cents: int
    due_date: date
    status: TrancheStatus
    transaction_ref: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    resubmission_count: int = 0

    @classmethod
    def from_domain(cls, tranche: Tranche) -> "TrancheSchema":
        return cls(
            installment_number=tranche.installment_number,
            percentage=tranche.percentage,
            amount_cents=tranche.amount_cents,
            due_date=tranche.due_date,
            status=tranche.status,
            transaction_ref=tranche.transaction_ref,
            submitted_at=tranche.submitted_at,
            approved_at=tranche.approved_at,
            paid_at=tranche.paid_at,
            admin_notes=tranche.admin_notes,
            resubmission_count=tranche.resubmission_count,
        )


class PaymentResponse(BaseModel):
    """Payment with derived totals and tranches"""

    payment_id: str
    account_id: str
    service_id: str
    payment_type: PaymentType
    status: PaymentStatus
    amount_cents: int
    amount_paid_cents: int
    amount_due_cents: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_service_completed: bool
    tranches: List[TrancheSchema]
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            payment_id=str(payment.id),
            account_id=payment.account_id,
            service_id=payment.service_id,
            payment_type=payment.type,
            status=payment.status,
            amount_cents=payment.amount_cents,
            amount_paid_cents=payment.amount_paid_cents,
            amount_due_cents=payment.amount_due_cents,
            start_date=payment.start_date,
            end_date=payment.end_date,
            is_service_completed=payment.is_service_completed,
            tranches=[TrancheSchema.from_domain(t) for t in payment.tranches],
            created_at=payment.created_at,
        )


class PaymentListResponse(BaseModel):
    """Response for GET /v1/payments"""

    payments: List[PaymentResponse]


class EntitlementResponse(BaseModel):
    """Response for GET /v1/payments/{payment_id}/entitlement"""

    payment_id: str
    phase: Phase
    evaluated_at: datetime


class PaymentStatsResponse(BaseModel):
    """Response for GET /v1/admin/payments/stats"""

    total_payments: int
    pending: int
    partial: int
    approved: int
    rejected: int
    installment_payments: int
    revenue_cents: int
    outstanding_cents: int
    overdue_payments: int

    @classmethod
    def from_domain(cls, stats: PaymentStats) -> "PaymentStatsResponse":
        return cls(**stats.__dict__)


class SplitResponse(BaseModel):
    percentage: int
    due_offset_days: int


class AccountResponse(BaseModel):
    """Account flags and installment policy"""

    account_id: str
    role: str
    is_active: bool
    is_verified: bool
    is_suspicious: bool
    installments_enabled: bool
    splits: List[SplitResponse]
    policy_updated_by: Optional[str] = None
    policy_updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        policy = account.installment_policy
        return cls(
            account_id=account.id,
            role=account.role.value,
            is_active=account.is_active,
            is_verified=account.is_verified,
            is_suspicious=account.is_suspicious,
            installments_enabled=policy.enabled,
            splits=[SplitResponse(percentage=s.percentage, due_offset_days=s.due_offset_days) for s in policy.splits],
            policy_updated_by=policy.updated_by,
            policy_updated_at=policy.updated_at,
        )


class SuspicionScanResponse(BaseModel):
    """Response for POST /v1/admin/suspicion-scan"""

    flagged_account_ids: List[str]
    scanned_at: datetime


class ErrorResponse(BaseModel):
    """Body returned for refused operations"""

    error: str
    entity_id: Optional[str] = None
    detail: str
