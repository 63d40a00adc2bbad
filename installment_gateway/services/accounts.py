"""Account-level administration: installment policy and the suspicion flag"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from installment_gateway.config import settings
from installment_gateway.domain import suspicion
from installment_gateway.domain.exceptions import InvalidSplitError, NotFoundError, ValidationError
from installment_gateway.domain.installments import default_splits, validate_splits
from installment_gateway.domain.models import Account, Payment, Split, Tranche
from installment_gateway.infrastructure.database.models import AccountRecord
from installment_gateway.infrastructure.database.repositories import (
    AccountRepository,
    PaymentRepository,
    account_to_domain,
    payment_to_domain,
)
from installment_gateway.infrastructure.database.session import unit_of_work
from installment_gateway.infrastructure.observability.logging import log_suspicion_flag
from installment_gateway.infrastructure.observability.metrics import suspicion_flag_counter, suspicion_scan_histogram
from installment_gateway.utils.date_utils import days_between, ensure_utc, utcnow

logger = logging.getLogger(__name__)


class AccountService:
    """Installment policy management and the suspicion monitor"""

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountRepository(db)
        self.payments = PaymentRepository(db)

    def get_account(self, account_id: str) -> Account:
        record = self.accounts.get_account(account_id)
        if record is None:
            raise NotFoundError("Account not found", entity_id=account_id)
        return account_to_domain(record)

    def set_installment_policy(
        self,
        account_id: str,
        splits: Sequence[Split],
        enabled: Optional[bool] = None,
        updated_by: str = "administrator",
        now: Optional[datetime] = None,
    ) -> Account:
        """
        Replace the account's split schedule, optionally toggling installments.

        An empty schedule clears the policy and disables installments.

        Raises:
            NotFoundError: Unknown account
            InvalidSplitError: Malformed schedule
            ValidationError: Enabling installments for a suspicious account or
                with fewer than two splits
        """
        now = ensure_utc(now or utcnow())
        splits = list(splits)
        if splits:
            validate_splits(splits)
        elif enabled:
            raise InvalidSplitError("Cannot enable installments without a split schedule", entity_id=account_id)

        with unit_of_work(self.db, entity_id=account_id):
            record, account = self._locked(account_id)
            policy = account.installment_policy
            policy.splits = splits
            if enabled is not None:
                policy.enabled = enabled
            if not splits:
                policy.enabled = False
            self._check_enable(account)
            policy.updated_by = updated_by
            policy.updated_at = now
            self.accounts.save(record, account)

        logger.info(
            "Installment policy updated",
            extra={
                "account_id": account_id,
                "enabled": account.installment_policy.enabled,
                "splits": [s.percentage for s in splits],
                "updated_by": updated_by,
            },
        )
        return account

    def set_installments_enabled(
        self,
        account_id: str,
        enabled: bool,
        updated_by: str = "administrator",
        now: Optional[datetime] = None,
    ) -> Account:
        """Toggle installments; enabling an account with no schedule installs the default one"""
        now = ensure_utc(now or utcnow())
        with unit_of_work(self.db, entity_id=account_id):
            record, account = self._locked(account_id)
            policy = account.installment_policy
            if enabled and not policy.splits:
                policy.splits = default_splits(
                    settings.default_split_percentages,
                    settings.default_split_interval_days,
                )
            policy.enabled = enabled
            self._check_enable(account)
            policy.updated_by = updated_by
            policy.updated_at = now
            self.accounts.save(record, account)

        logger.info(
            "Installments toggled",
            extra={"account_id": account_id, "enabled": enabled, "updated_by": updated_by},
        )
        return account

    def set_suspicion(
        self,
        account_id: str,
        is_suspicious: bool,
        updated_by: str = "administrator",
        now: Optional[datetime] = None,
    ) -> Account:
        """
        Administrator flags or clears an account.

        Clearing the flag leaves installments disabled; they have to be
        re-enabled explicitly.
        """
        now = ensure_utc(now or utcnow())
        with unit_of_work(self.db, entity_id=account_id):
            record, account = self._locked(account_id)
            if is_suspicious:
                changed = suspicion.flag(account, now, flagged_by=updated_by)
            else:
                changed = account.is_suspicious
                account.is_suspicious = False
            if changed:
                self.accounts.save(record, account)

        if changed and is_suspicious:
            suspicion_flag_counter.labels(source="admin").inc()
        logger.info(
            "Suspicion flag set by administrator",
            extra={"account_id": account_id, "is_suspicious": is_suspicious, "updated_by": updated_by},
        )
        return account

    def run_suspicion_scan(self, now: Optional[datetime] = None) -> List[str]:
        """
        Flag every account with an overdue installment.

        Returns only accounts flagged by this run; accounts that are already
        suspicious are left as they are.
        """
        now = ensure_utc(now or utcnow())
        with suspicion_scan_histogram.time():
            payments = [payment_to_domain(r) for r in self.payments.list_open_installment_payments()]
            candidates = suspicion.scan(payments, now)
            overdue = self._first_overdue(payments, now)

            flagged: List[str] = []
            with unit_of_work(self.db):
                for account_id in candidates:
                    record, account = self._locked(account_id)
                    if suspicion.flag(account, now, flagged_by=settings.suspicion_flagged_by):
                        self.accounts.save(record, account)
                        flagged.append(account_id)

        today = now.date()
        for account_id in flagged:
            payment, tranche = overdue[account_id]
            suspicion_flag_counter.labels(source="scan").inc()
            log_suspicion_flag(
                account_id=account_id,
                payment_id=str(payment.id),
                installment_number=tranche.installment_number,
                days_overdue=days_between(tranche.due_date, today),
            )

        logger.info(
            "Suspicion scan completed",
            extra={"payments_scanned": len(payments), "accounts_flagged": len(flagged)},
        )
        return flagged

    def _locked(self, account_id: str) -> Tuple[AccountRecord, Account]:
        record = self.accounts.get_account_for_update(account_id)
        if record is None:
            raise NotFoundError("Account not found", entity_id=account_id)
        return record, account_to_domain(record)

    @staticmethod
    def _check_enable(account: Account) -> None:
        policy = account.installment_policy
        if not policy.enabled:
            return
        if account.is_suspicious:
            raise ValidationError("Cannot enable installments for a suspicious account", entity_id=account.id)
        if len(policy.splits) < 2:
            raise ValidationError("Installments need at least two splits", entity_id=account.id)

    @staticmethod
    def _first_overdue(payments: List[Payment], now: datetime) -> Dict[str, Tuple[Payment, Tranche]]:
        overdue: Dict[str, Tuple[Payment, Tranche]] = {}
        for payment in payments:
            tranche = suspicion.overdue_tranche(payment, now)
            if tranche is not None:
                overdue.setdefault(payment.account_id, (payment, tranche))
        return overdue
