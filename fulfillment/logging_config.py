"""
Structured logging configuration.
Outputs JSON in production for observability (e.g. Datadog/Vercel logs).
Outputs plain text with key=value context in development for readability.

Pipeline components receive a ScopedLogger instead of using module loggers
directly, so every line carries the session/ticket context it was bound with.
"""

import sys
import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple

from fulfillment.config import settings

# Keyword arguments understood by logging.Logger._log; everything else is context.
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


class JSONFormatter(logging.Formatter):
    """Format logs as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        # Bound and call-site context from ScopedLogger
        context = getattr(record, "context", None)
        if context:
            log_obj.update(context)

        return json.dumps(log_obj, default=str)


class ContextFormatter(logging.Formatter):
    """Plain text formatter that appends ScopedLogger context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            line = f"{line} | {pairs}"
        return line


class ScopedLogger(logging.LoggerAdapter):
    """
    Logger carrying a scope name and bound context fields.

    Extra keyword arguments on any log call are treated as structured fields:

        log = get_scoped_logger("WebhookHandler", session_id="cs_123")
        log.info("Tickets processed", count=2)
        log.error("Ticket insert failed", type="system", severity="high",
                  code="TICKET_CREATION_FAILED")

    The merged fields are attached to the record as ``record.context``.
    """

    def __init__(
        self,
        logger: logging.Logger,
        scope: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(logger, {"scope": scope, **(context or {})})
        self.scope = scope

    @property
    def context(self) -> Dict[str, Any]:
        """Bound fields without the scope name."""
        return {k: v for k, v in self.extra.items() if k != "scope"}

    def bind(self, **fields: Any) -> "ScopedLogger":
        """Return a child logger with additional bound fields."""
        return ScopedLogger(self.logger, self.scope, {**self.context, **fields})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in _LOGGING_KWARGS}
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = {**self.extra, **fields}
        kwargs["extra"] = extra
        return msg, kwargs


def get_scoped_logger(scope: str, name: str = "fulfillment", **context: Any) -> ScopedLogger:
    """Create a ScopedLogger for a pipeline component."""
    return ScopedLogger(logging.getLogger(name), scope, context)


def configure_logging():
    """Configure root logger."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO if settings.is_production else logging.DEBUG)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)

    if settings.is_production:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            ContextFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(console_handler)

    # Set levels for noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("weasyprint").setLevel(logging.WARNING)
