"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from settlement_engine.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        json_default=str,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_settlement(
    request_id: Optional[str],
    order_number: str,
    customer_id: Optional[str],
    total: Decimal,
    installment_count: int,
    duration_ms: float,
) -> None:
    """Log structured settlement outcome for analysis"""
    logging.info(
        "Settlement completed",
        extra={
            "request_id": request_id,
            "order_number": order_number,
            "customer_id": customer_id,
            "step": "settlement_completed",
            "total": str(total),
            "installment_count": installment_count,
            "duration_ms": duration_ms,
        },
    )


def log_ledger_event(step: str, account_id: str, amount: Decimal, balance_after: Decimal, **extra: Any) -> None:
    """Log a balance mutation with the resulting balance"""
    logging.info(
        "Ledger balance changed",
        extra={
            "step": step,
            "bank_account_id": account_id,
            "amount": str(amount),
            "balance_after": str(balance_after),
            **extra,
        },
    )
