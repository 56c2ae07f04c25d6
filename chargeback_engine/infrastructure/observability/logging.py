"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from chargeback_engine.config import settings


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

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_decision(
    request_id: str,
    transaction_id: str,
    decision_kind: str,
    policy_code: str,
    replayed: bool,
    duration_ms: float,
) -> None:
    """Log structured decision outcome for analysis"""
    logging.info(
        "Decision completed",
        extra={
            "request_id": request_id,
            "transaction_id": transaction_id,
            "step": "decision_complete",
            "decision_kind": decision_kind,
            "policy_code": policy_code,
            "replayed": replayed,
            "duration_ms": duration_ms,
        },
    )


def log_transition(
    transaction_id: str,
    event: str,
    source: str,
    target: str,
    actor: Optional[str],
    request_id: Optional[str] = None,
) -> None:
    """Log one representment state transition"""
    logging.info(
        "Representment transition",
        extra={
            "request_id": request_id,
            "transaction_id": transaction_id,
            "step": "representment_transition",
            "event": event,
            "from_status": source,
            "to_status": target,
            "actor": actor or "system",
        },
    )
