"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from installment_gateway.domain.exceptions import NotFoundError


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMINISTRATOR = "administrator"


class PaymentType(str, Enum):
    FULL = "full"
    INSTALLMENT = "installment"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    APPROVED = "approved"
    REJECTED = "rejected"


class TrancheStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class Decision(str, Enum):
    """Administrator verdict on a submitted tranche"""

    APPROVED = "approved"
    REJECTED = "rejected"


class Phase(str, Enum):
    """Customer-visible lifecycle of a purchased service"""

    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    COMPLETED = "completed"
    REJECTED = "rejected"


# Tranches in these states count towards the amount paid
SETTLED_STATUSES = frozenset({TrancheStatus.APPROVED, TrancheStatus.PAID})


@dataclass(frozen=True)
class Split:
    """One entry of an installment schedule"""

    percentage: int
    due_offset_days: int = 0


@dataclass
class InstallmentPolicy:
    """Per-account installment configuration"""

    enabled: bool = False
    splits: List[Split] = field(default_factory=list)
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass
class Account:
    """Customer or administrator account"""

    id: str
    role: Role = Role.CUSTOMER
    is_active: bool = True
    is_verified: bool = False
    is_suspicious: bool = False
    installment_policy: InstallmentPolicy = field(default_factory=InstallmentPolicy)

    @property
    def can_start_installments(self) -> bool:
        return (
            self.is_active
            and not self.is_suspicious
            and self.installment_policy.enabled
            and len(self.installment_policy.splits) >= 2
        )


@dataclass(frozen=True)
class Service:
    """Purchasable service, read-only to the reconciliation core"""

    id: str
    price_cents: int
    name: str = ""
    duration_label: str = ""
    is_active: bool = True


@dataclass
class Tranche:
    """Single scheduled payment within a purchase"""

    installment_number: int
    percentage: int
    amount_cents: int
    due_date: date
    status: TrancheStatus = TrancheStatus.PENDING
    transaction_ref: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    resubmission_count: int = 0
    payment_id: Optional[uuid.UUID] = None

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    @property
    def label(self) -> str:
        """Identifier used in error messages and logs"""
        if self.payment_id is None:
            return f"tranche-{self.installment_number}"
        return f"{self.payment_id}/{self.installment_number}"


@dataclass
class Payment:
    """Purchase of a service, paid through one or more tranches"""

    account_id: str
    service_id: str
    type: PaymentType
    amount_cents: int
    tranches: List[Tranche] = field(default_factory=list)
    id: Optional[uuid.UUID] = None
    status: PaymentStatus = PaymentStatus.PENDING
    amount_paid_cents: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_service_completed: bool = False
    created_at: Optional[datetime] = None

    @property
    def amount_due_cents(self) -> int:
        return max(self.amount_cents - self.amount_paid_cents, 0)

    @property
    def current_tranche(self) -> Optional[Tranche]:
        """First tranche that is neither approved nor paid"""
        for tranche in self.tranches:
            if not tranche.is_settled:
                return tranche
        return None

    def tranche(self, installment_number: int) -> Tranche:
        for tranche in self.tranches:
            if tranche.installment_number == installment_number:
                return tranche
        raise NotFoundError(
            f"Installment {installment_number} not found",
            entity_id=f"{self.id}/{installment_number}",
        )

    def previous_tranche(self, installment_number: int) -> Optional[Tranche]:
        if installment_number <= 1:
            return None
        return self.tranche(installment_number - 1)


@dataclass
class PaymentStats:
    """Dashboard totals across all payments"""

    total_payments: int
    pending: int
    partial: int
    approved: int
    rejected: int
    installment_payments: int
    revenue_cents: int
    outstanding_cents: int
    overdue_payments: int
