"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "lendit-gateway"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args, service_name: str = SERVICE_NAME, **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = SERVICE_NAME) -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        service_name=service_name,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


logger = logging.getLogger("lendit_gateway")


def log_transition(
    agreement_id: str,
    from_status: str,
    to_status: str,
    actor: Optional[str] = None,
    request_id: Optional[str] = None,
) -> None:
    """Log a loan status change"""
    logger.info(
        "Agreement transition",
        extra={
            "request_id": request_id,
            "agreement_id": agreement_id,
            "step": "transition",
            "from_status": from_status,
            "to_status": to_status,
            "actor": actor,
        },
    )


def log_score_change(
    user_id: str,
    old_score: int,
    new_score: int,
    event_type: str,
    reference_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> None:
    """Log a trust score recompute outcome"""
    logger.info(
        "Trust score updated",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "score_recompute",
            "old_score": old_score,
            "new_score": new_score,
            "change_amount": new_score - old_score,
            "event_type": event_type,
            "event_reference_id": reference_id,
        },
    )
