"""SQLAlchemy ORM models for accounts, services, payments and tranches"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class AccountRecord(Base):
    """Customer or administrator account with its installment policy"""

    __tablename__ = "account"

    id = Column(Text, primary_key=True)
    role = Column(Text, nullable=False, default="customer")
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_suspicious = Column(Boolean, nullable=False, default=False)
    installments_enabled = Column(Boolean, nullable=False, default=False)
    installment_splits = Column(JSON, nullable=False, default=list)  # [{"percentage", "due_offset_days"}]
    policy_updated_by = Column(Text, nullable=True)
    policy_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payments = relationship("PaymentRecord", back_populates="account")


class ServiceRecord(Base):
    """Purchasable service"""

    __tablename__ = "service"

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False, default="")
    price_cents = Column(BigInteger, nullable=False)
    duration_label = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PaymentRecord(Base):
    """Purchase of a service; status and amount paid are derived from tranches"""

    __tablename__ = "payment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(Text, ForeignKey("account.id"), nullable=False, index=True)
    service_id = Column(Text, ForeignKey("service.id"), nullable=False)
    payment_type = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)
    amount_cents = Column(BigInteger, nullable=False)
    amount_paid_cents = Column(BigInteger, nullable=False, default=0)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    is_service_completed = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic locking: concurrent writers of the same payment fail with StaleDataError
    __mapper_args__ = {"version_id_col": version}

    account = relationship("AccountRecord", back_populates="payments")
    tranches = relationship(
        "TrancheRecord",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="TrancheRecord.installment_number",
    )


class TrancheRecord(Base):
    """Individual tranche within a payment"""

    __tablename__ = "payment_tranche"
    __table_args__ = (UniqueConstraint("payment_id", "installment_number"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(UUID(as_uuid=True), ForeignKey("payment.id", ondelete="CASCADE"), nullable=False)
    installment_number = Column(Integer, nullable=False)
    percentage = Column(Integer, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    transaction_ref = Column(Text, nullable=True, unique=True, index=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    admin_notes = Column(Text, nullable=True)
    resubmission_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payment = relationship("PaymentRecord", back_populates="tranches")
