"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from sda_billing.config import settings


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
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_run_completed(
    run_id: str,
    organization_id: str | None,
    status: str,
    processed: int,
    successful: int,
    failed: int,
    duration_ms: float,
) -> None:
    """Log structured run outcome for analysis"""
    logging.getLogger("sda_billing.runs").info(
        "Automation run completed",
        extra={
            "run_id": run_id,
            "organization_id": organization_id,
            "step": "run_complete",
            "run_status": status,
            "contracts_processed": processed,
            "transactions_created": successful,
            "contracts_failed": failed,
            "duration_ms": duration_ms,
        },
    )
