"""Customer-facing payment endpoints"""

import uuid
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request

from installment_gateway.api.v1.schemas import (
    CreatePaymentRequest,
    EntitlementResponse,
    PaymentListResponse,
    PaymentResponse,
    SubmitTrancheRequest,
    TrancheSchema,
)
from installment_gateway.api.dependencies import (
    get_notification_client,
    get_payment_id,
    get_payment_service,
    get_request_id,
)
from installment_gateway.domain.models import PaymentStatus
from installment_gateway.infrastructure.clients.notifications import NotificationClient
from installment_gateway.services.payments import PaymentService
from installment_gateway.utils.date_utils import utcnow

router = APIRouter()


@router.post("/payments", response_model=PaymentResponse, status_code=201)
def create_payment(
    request_body: CreatePaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Start a purchase, paid in full or by installment.

    Flow:
    1. Validate account, service and installment eligibility
    2. Plan tranches from the account's split schedule
    3. Submit the first tranche if a transaction reference is given
    4. Persist and notify
    """
    payment = service.create_payment(
        account_id=request_body.account_id,
        service_id=request_body.service_id,
        payment_type=request_body.payment_type,
        transaction_ref=request_body.transaction_ref,
    )

    background_tasks.add_task(
        notifier.send_event,
        "payment.created",
        {
            "payment_id": str(payment.id),
            "account_id": payment.account_id,
            "payment_type": payment.type.value,
            "status": payment.status.value,
            "amount_cents": payment.amount_cents,
            "request_id": get_request_id(request),
        },
    )
    return PaymentResponse.from_domain(payment)


@router.get("/payments", response_model=PaymentListResponse)
def list_payments(
    account_id: Optional[str] = Query(None, description="Only payments of this account"),
    status: Optional[PaymentStatus] = Query(None),
    service: PaymentService = Depends(get_payment_service),
):
    payments = service.list_payments(account_id=account_id, status=status)
    return PaymentListResponse(payments=[PaymentResponse.from_domain(p) for p in payments])


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
def get_payment(
    payment_id: uuid.UUID = Depends(get_payment_id),
    service: PaymentService = Depends(get_payment_service),
):
    return PaymentResponse.from_domain(service.get_payment(payment_id))


@router.post("/payments/{payment_id}/tranches/{installment_number}/submit", response_model=TrancheSchema)
def submit_tranche(
    installment_number: int,
    request_body: SubmitTrancheRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    payment_id: uuid.UUID = Depends(get_payment_id),
    service: PaymentService = Depends(get_payment_service),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Report the transaction reference for a tranche"""
    tranche = service.submit_tranche(
        payment_id,
        installment_number,
        request_body.transaction_ref,
        request_id=get_request_id(request),
    )

    background_tasks.add_task(
        notifier.send_event,
        "tranche.submitted",
        {
            "payment_id": str(payment_id),
            "installment_number": installment_number,
            "transaction_ref": tranche.transaction_ref,
            "request_id": get_request_id(request),
        },
    )
    return TrancheSchema.from_domain(tranche)


@router.get("/payments/{payment_id}/entitlement", response_model=EntitlementResponse)
def get_entitlement(
    now: Optional[datetime] = Query(None, description="Evaluation time, defaults to the current time"),
    payment_id: uuid.UUID = Depends(get_payment_id),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Current lifecycle phase of the purchased service.

    Returns:
        pending, active, expired, completed or rejected
    """
    evaluated_at = now or utcnow()
    phase = service.get_entitlement_phase(payment_id, evaluated_at)
    return EntitlementResponse(payment_id=str(payment_id), phase=phase, evaluated_at=evaluated_at)
