"""Structured JSON logging configuration."""

import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict
from claim_controller.core.config import settings

# Extra attributes copied from the log record into the JSON payload
_EXTRA_FIELDS = (
    "claim",
    "sandbox",
    "pool",
    "action",
    "outcome",
    "phase",
    "reason",
    "latency_ms",
    "error",
    "request_id",
    "method",
    "path",
    "status_code",
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging():
    """Configure controller logging."""
    logger = logging.getLogger("claim_controller")
    logger.setLevel(getattr(logging, settings.log_level.upper()))

    # Remove existing handlers
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)

    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        )

    logger.addHandler(handler)

    return logger


# Global logger instance
logger = setup_logging()


def log_reconcile(
    claim: str,
    action: str = None,
    outcome: str = None,
    phase: str = None,
    reason: str = None,
    latency_ms: int = None,
    error: str = None,
    message: str = None,
):
    """
    Log structured reconciliation information.

    Args:
        claim: Claim key ("namespace/name")
        action: Action performed (reconcile, ensure_claiming, ttl_cleanup, etc.)
        outcome: Outcome (success, error, conflict, not_found, etc.)
        phase: Claim phase after the action
        reason: Reason code for a phase transition
        latency_ms: Pass latency in milliseconds
        error: Error message if failed
        message: Log message
    """
    extra = {"claim": claim}

    if action:
        extra["action"] = action
    if outcome:
        extra["outcome"] = outcome
    if phase:
        extra["phase"] = phase
    if reason:
        extra["reason"] = reason
    if latency_ms is not None:
        extra["latency_ms"] = latency_ms
    if error:
        extra["error"] = error

    if outcome in ("error", "failure") or error:
        logger.error(message or f"Reconcile failed: {action}", extra=extra)
    else:
        logger.info(message or f"Reconcile completed: {action}", extra=extra)
