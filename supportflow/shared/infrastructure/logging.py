"""
Structured Logging
==================

JSON logs for the API, the ingestion worker and the support agent.

Provides:
- One JSON object per record, with timestamp and environment
- correlation_id on every record written while a request is handled
  (the middleware sets it in a context variable, a handler filter stamps it)
- Redaction of secrets and raw customer e-mail addresses
- log_latency for timing ingestion and generation runs

Usage:
    from supportflow.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Document indexed", extra={"document_id": "..."})
"""

import logging
import re
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional
from contextlib import contextmanager

from pythonjsonlogger import jsonlogger

_EMAIL_RE = re.compile(r"([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})")

# Set by CorrelationIDMiddleware for the duration of a request
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def mask_email(email: Optional[str]) -> Optional[str]:
    """
    Reduce an e-mail address to a privacy-safe form.

    The local part keeps its first two characters followed by ``***``;
    the domain is preserved. Short local parts collapse to ``***``.
    """
    if not email:
        return None
    user, sep, domain = email.partition("@")
    if not sep or not domain:
        return "***"
    safe_user = "***" if len(user) <= 2 else f"{user[:2]}***"
    return f"{safe_user}@{domain}"


def _mask_emails_in(text: str) -> str:
    return _EMAIL_RE.sub(lambda m: mask_email(m.group(0)) or "***", text)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that adds timestamp, correlation_id and environment,
    and scrubs secrets and customer addresses before a record is written.
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if hasattr(record, "correlation_id"):
            log_record["correlation_id"] = record.correlation_id
        elif "correlation_id" in message_dict:
            log_record["correlation_id"] = message_dict["correlation_id"]

        log_record["environment"] = getattr(record, "environment", "unknown")

        for key, value in list(log_record.items()):
            if not isinstance(value, str):
                continue
            lowered = key.lower()
            if "password" in lowered or "secret" in lowered:
                log_record[key] = "***REDACTED***"
            elif "token" in lowered and "tokens" not in lowered:
                log_record[key] = "***REDACTED***"
            elif "api_key" in lowered:
                log_record[key] = "***REDACTED***"
            elif "@" in value:
                log_record[key] = _mask_emails_in(value)


class CorrelationIdFilter(logging.Filter):
    """Stamps the current request's correlation id on records that carry none."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            correlation_id = correlation_id_var.get()
            if correlation_id is not None:
                record.correlation_id = correlation_id
        return True


# Third-party loggers that drown the ingestion and routing records at INFO
_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "apscheduler", "watchdog", "pymilvus")


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Send every record to stdout as one JSON object.

    Called once from the application lifespan. Records without an
    ``environment`` attribute get the deployment's environment name.
    """
    log_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))

    def _add_environment(record: logging.LogRecord) -> bool:
        if not hasattr(record, "environment"):
            record.environment = environment
        return True

    handler.addFilter(_add_environment)
    handler.addFilter(CorrelationIdFilter())
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Log how long a block took, whether it finished or raised.

    The record carries ``outcome`` ("ok" or "error") and, on failure,
    the exception type; the exception itself propagates unchanged.

    Usage:
        with log_latency(logger, "ingest_document", document_id=doc_id):
            await pipeline.ingest(doc_id)
    """
    start = time.perf_counter()
    error_type: Optional[str] = None
    try:
        yield
    except Exception as e:
        error_type = type(e).__name__
        raise
    finally:
        extra = {
            "operation": operation,
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "outcome": "error" if error_type else "ok",
            **extra_context,
        }
        if error_type:
            extra["error_type"] = error_type
            logger.warning(f"{operation} failed", extra=extra)
        else:
            logger.info(f"{operation} finished", extra=extra)
