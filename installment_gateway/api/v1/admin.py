"""Administrator endpoints: tranche adjudication, service windows, account policy, suspicion"""

import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, Request

from installment_gateway.api.v1.schemas import (
    AccountResponse,
    AdjudicateTrancheRequest,
    InstallmentPolicyRequest,
    InstallmentToggleRequest,
    PaymentResponse,
    PaymentStatsResponse,
    ServiceWindowRequest,
    SuspicionRequest,
    SuspicionScanRequest,
    SuspicionScanResponse,
    TrancheSchema,
)
from installment_gateway.api.dependencies import (
    get_account_service,
    get_notification_client,
    get_payment_id,
    get_payment_service,
    get_request_id,
)
from installment_gateway.config import settings
from installment_gateway.domain.models import Split
from installment_gateway.infrastructure.clients.notifications import NotificationClient
from installment_gateway.services.accounts import AccountService
from installment_gateway.services.payments import PaymentService
from installment_gateway.utils.date_utils import utcnow

router = APIRouter()


@router.post(
    "/admin/payments/{payment_id}/tranches/{installment_number}/adjudicate",
    response_model=TrancheSchema,
)
def adjudicate_tranche(
    installment_number: int,
    request_body: AdjudicateTrancheRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    payment_id: uuid.UUID = Depends(get_payment_id),
    service: PaymentService = Depends(get_payment_service),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Approve or reject a submitted tranche"""
    tranche = service.adjudicate_tranche(
        payment_id,
        installment_number,
        request_body.decision,
        request_body.notes,
        request_id=get_request_id(request),
    )
    payment = service.get_payment(payment_id)

    background_tasks.add_task(
        notifier.send_event,
        f"tranche.{tranche.status.value}",
        {
            "payment_id": str(payment_id),
            "account_id": payment.account_id,
            "installment_number": installment_number,
            "payment_status": payment.status.value,
            "amount_due_cents": payment.amount_due_cents,
            "notes": tranche.admin_notes,
            "request_id": get_request_id(request),
        },
    )
    return TrancheSchema.from_domain(tranche)


@router.post("/admin/payments/{payment_id}/tranches/{installment_number}/paid", response_model=TrancheSchema)
def mark_tranche_paid(
    installment_number: int,
    background_tasks: BackgroundTasks,
    request: Request,
    payment_id: uuid.UUID = Depends(get_payment_id),
    service: PaymentService = Depends(get_payment_service),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Confirm settlement of an approved tranche"""
    tranche = service.mark_tranche_paid(payment_id, installment_number, request_id=get_request_id(request))
    background_tasks.add_task(
        notifier.send_event,
        "tranche.paid",
        {"payment_id": str(payment_id), "installment_number": installment_number},
    )
    return TrancheSchema.from_domain(tranche)


@router.put("/admin/payments/{payment_id}/service-window", response_model=PaymentResponse)
def set_service_window(
    request_body: ServiceWindowRequest,
    payment_id: uuid.UUID = Depends(get_payment_id),
    service: PaymentService = Depends(get_payment_service),
):
    payment = service.set_service_window(payment_id, request_body.start_date, request_body.end_date)
    return PaymentResponse.from_domain(payment)


@router.post("/admin/payments/{payment_id}/complete", response_model=PaymentResponse)
def mark_service_completed(
    payment_id: uuid.UUID = Depends(get_payment_id),
    service: PaymentService = Depends(get_payment_service),
):
    return PaymentResponse.from_domain(service.mark_service_completed(payment_id))


@router.get("/admin/payments/stats", response_model=PaymentStatsResponse)
def get_payment_stats(service: PaymentService = Depends(get_payment_service)):
    """Payment counts and totals for the admin dashboard"""
    return PaymentStatsResponse.from_domain(service.payment_stats())


@router.put("/admin/accounts/{account_id}/installment-policy", response_model=AccountResponse)
def set_installment_policy(
    account_id: str,
    request_body: InstallmentPolicyRequest,
    service: AccountService = Depends(get_account_service),
):
    """
    Replace an account's split schedule.

    Splits without a due offset are spaced by the configured interval.
    """
    interval = settings.default_split_interval_days
    splits = [
        Split(
            percentage=s.percentage,
            due_offset_days=s.due_offset_days if s.due_offset_days is not None else i * interval,
        )
        for i, s in enumerate(request_body.splits)
    ]
    account = service.set_installment_policy(
        account_id,
        splits,
        enabled=request_body.enabled,
        updated_by=request_body.updated_by,
    )
    return AccountResponse.from_domain(account)


@router.patch("/admin/accounts/{account_id}/installments", response_model=AccountResponse)
def set_installments_enabled(
    account_id: str,
    request_body: InstallmentToggleRequest,
    service: AccountService = Depends(get_account_service),
):
    account = service.set_installments_enabled(account_id, request_body.enabled, updated_by=request_body.updated_by)
    return AccountResponse.from_domain(account)


@router.patch("/admin/accounts/{account_id}/suspicion", response_model=AccountResponse)
def set_suspicion(
    account_id: str,
    request_body: SuspicionRequest,
    service: AccountService = Depends(get_account_service),
):
    account = service.set_suspicion(account_id, request_body.is_suspicious, updated_by=request_body.updated_by)
    return AccountResponse.from_domain(account)


@router.post("/admin/suspicion-scan", response_model=SuspicionScanResponse)
def run_suspicion_scan(
    background_tasks: BackgroundTasks,
    request_body: SuspicionScanRequest | None = None,
    service: AccountService = Depends(get_account_service),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Flag accounts with overdue installments and disable their installment policy"""
    now = (request_body.now if request_body else None) or utcnow()
    flagged = service.run_suspicion_scan(now)

    for account_id in flagged:
        background_tasks.add_task(notifier.send_event, "account.flagged", {"account_id": account_id})

    return SuspicionScanResponse(flagged_account_ids=flagged, scanned_at=now)
