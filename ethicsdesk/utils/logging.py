"""
Logging Configuration

Plain-text logs in development, one JSON object per line in production.

Request-scoped identifiers (organization, user, request id) travel in the
``extra`` mapping; build_log_context assembles them and JSONFormatter
lifts them to top-level fields. Report contents and reporter identities
are never logged.
"""
import logging
import sys
from typing import Any, Dict, Optional
import json
from datetime import datetime

# Keys copied from a record's extra into the JSON document
CONTEXT_FIELDS = (
    "organization_id",
    "user_id",
    "request_id",
    "case_id",
    "route",
    "method",
    "status_code",
    "duration_ms",
    "event_type",
    "reason",
    "security_event",
)


class JSONFormatter(logging.Formatter):
    """One JSON document per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        document: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        document.update(
            (field, getattr(record, field)) for field in CONTEXT_FIELDS if hasattr(record, field)
        )
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        return json.dumps(document, default=str)


def setup_logging(log_level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: emit JSONFormatter output instead of plain text

    Replaces any handlers already installed, so calling it again (tests,
    reloads) does not duplicate output.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
    root_logger.addHandler(handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "botocore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def build_log_context(
    organization_id: Optional[str] = None,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    route: Optional[str] = None,
    method: Optional[str] = None,
) -> Dict[str, Any]:
    """``extra`` mapping with only the identifiers that are known."""
    context = {
        "organization_id": organization_id,
        "user_id": user_id,
        "request_id": request_id,
        "route": route,
        "method": method,
    }
    return {key: value for key, value in context.items() if value}


def log_security_event(event_type: str, details: Dict[str, Any], logger: logging.Logger) -> None:
    """
    Log a security-relevant event at warning level.

    Event types in use:
    - failed_login: rejected credentials
    - refresh_token_reuse: a rotated refresh token was presented again
    - tenant_isolation_violation: cross-organization read or write attempt
    - rls_bypass: tenant filtering lifted for a privileged operation
    - rate_limit_exceeded: organization ran out of tokens
    """
    logger.warning(
        f"SECURITY EVENT: {event_type}",
        extra={"security_event": True, "event_type": event_type, **details}
    )
