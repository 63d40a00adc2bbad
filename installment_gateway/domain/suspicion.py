"""Suspicion monitor - detects accounts that missed an installment deadline"""

from datetime import datetime
from typing import Iterable, List, Optional

from installment_gateway.domain.models import Account, Payment, PaymentStatus, PaymentType, Tranche
from installment_gateway.utils.date_utils import ensure_utc


def overdue_tranche(payment: Payment, now: datetime) -> Optional[Tranche]:
    """Next unresolved tranche of an installment payment, if its due date has passed"""
    if payment.type != PaymentType.INSTALLMENT or payment.status == PaymentStatus.APPROVED:
        return None

    tranche = payment.current_tranche
    if tranche is None or tranche.is_settled:
        return None

    today = ensure_utc(now).date()
    return tranche if tranche.due_date < today else None


def scan(payments: Iterable[Payment], now: datetime) -> List[str]:
    """
    Accounts owning at least one overdue installment payment.

    Read-only; each account appears once, in order of first overdue payment.
    """
    flagged: List[str] = []
    for payment in payments:
        if overdue_tranche(payment, now) is not None and payment.account_id not in flagged:
            flagged.append(payment.account_id)
    return flagged


def flag(account: Account, now: datetime, flagged_by: str) -> bool:
    """
    Mark an account suspicious and disable its installment policy.

    Idempotent: returns False when the account was already flagged and its
    installments already disabled.
    """
    if account.is_suspicious and not account.installment_policy.enabled:
        return False

    account.is_suspicious = True
    account.installment_policy.enabled = False
    account.installment_policy.updated_by = flagged_by
    account.installment_policy.updated_at = now
    return True
