"""Dependency injection for FastAPI endpoints"""

import uuid
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from installment_gateway.infrastructure.clients.notifications import NotificationClient
from installment_gateway.infrastructure.database.session import get_db
from installment_gateway.services.accounts import AccountService
from installment_gateway.services.payments import PaymentService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_payment_id(payment_id: str) -> uuid.UUID:
    """Parse the payment id path parameter"""
    try:
        return uuid.UUID(payment_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payment ID format")


def get_notification_client() -> NotificationClient:
    """Provide notification webhook client instance"""
    return NotificationClient()


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db)


def get_account_service(db: Session = Depends(get_db)) -> AccountService:
    return AccountService(db)
