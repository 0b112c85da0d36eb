"""Structured JSON logging for the desk core and its API"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from bourso_desk.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on stdout"""
    logger = logging.getLogger()
    logger.setLevel(level)

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_session_transition(previous: str, current: str, error: Optional[str] = None) -> None:
    """Log a session state change"""
    logging.getLogger("bourso_desk.session").info(
        "Session state changed",
        extra={
            "step": "session_transition",
            "previous_state": previous,
            "current_state": current,
            "error": error,
        },
    )


def log_transfer_outcome(
    source_account_id: str,
    target_account_id: str,
    amount: str,
    succeeded: bool,
    last_step: int,
    duration_ms: float,
    error: Optional[str] = None,
) -> None:
    """Log the outcome of one transfer submission"""
    logging.getLogger("bourso_desk.transfer").info(
        "Transfer completed" if succeeded else "Transfer failed",
        extra={
            "step": "transfer_complete",
            "source_account_id": source_account_id,
            "target_account_id": target_account_id,
            "amount": amount,
            "transfer_outcome": "succeeded" if succeeded else "failed",
            "last_step": last_step,
            "duration_ms": duration_ms,
            "error": error,
        },
    )
