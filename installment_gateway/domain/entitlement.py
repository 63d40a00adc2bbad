"""Entitlement phase of a purchased service"""

from datetime import datetime

from installment_gateway.domain.models import Payment, PaymentStatus, Phase
from installment_gateway.utils.date_utils import ensure_utc


def phase_of(payment: Payment, now: datetime) -> Phase:
    """
    Derive what the customer may currently use. Never persisted.

    Precedence (first match wins):
    1. Service marked completed by an administrator → completed
    2. Payment rejected → rejected
    3. Payment pending → pending
    4. Service window not set → pending
    5. Before start → pending
    6. Within window (inclusive) → active
    7. After end → expired
    """
    if payment.is_service_completed:
        return Phase.COMPLETED

    if payment.status == PaymentStatus.REJECTED:
        return Phase.REJECTED

    if payment.status == PaymentStatus.PENDING:
        return Phase.PENDING

    if payment.start_date is None or payment.end_date is None:
        return Phase.PENDING

    now = ensure_utc(now)
    start = ensure_utc(payment.start_date)
    end = ensure_utc(payment.end_date)

    if now < start:
        return Phase.PENDING
    if now <= end:
        return Phase.ACTIVE
    return Phase.EXPIRED
