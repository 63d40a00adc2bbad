"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO
from pythonjsonlogger import jsonlogger

from installment_gateway.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Route every log record through one JSON handler on stdout"""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    root.addHandler(handler)

    # Request-level chatter from client libraries only at WARNING and above
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))


def log_transition(
    payment_id: str,
    installment_number: int,
    transition: str,
    tranche_status: str,
    payment_status: str,
    amount_paid_cents: int,
    request_id: Optional[str] = None,
) -> None:
    """Log a tranche transition together with the recomputed payment state"""
    logging.info(
        "Tranche transition applied",
        extra={
            "request_id": request_id,
            "payment_id": payment_id,
            "installment_number": installment_number,
            "step": transition,
            "tranche_status": tranche_status,
            "payment_status": payment_status,
            "amount_paid_cents": amount_paid_cents,
        },
    )


def log_suspicion_flag(account_id: str, payment_id: str, installment_number: int, days_overdue: int) -> None:
    """Log an account being flagged for a missed installment"""
    logging.warning(
        "Account flagged as suspicious",
        extra={
            "account_id": account_id,
            "payment_id": payment_id,
            "installment_number": installment_number,
            "days_overdue": days_overdue,
            "step": "suspicion_flag",
        },
    )
