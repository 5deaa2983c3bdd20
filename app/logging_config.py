"""
Storefront Mail Logging Configuration
Structured logging with context for delivery triage

Log lines carry ids, event types and recipient addresses. Rendered bodies
and raw webhook payloads are redacted before formatting.
"""
import json
import logging
import os
import sys
import time
import traceback
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

# ============================================================
# LOG LEVELS
# ============================================================

LOG_LEVEL = os.environ.get("MAIL_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("MAIL_LOG_FORMAT", "json")  # json or text

# Context keys whose values never reach the log stream
REDACTED_KEYS = frozenset({"html", "body", "payload", "raw_body", "template_data"})


def _scrub(context: Dict[str, Any]) -> Dict[str, Any]:
    return {key: ("[redacted]" if key in REDACTED_KEYS else value) for key, value in context.items()}


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredLogger:
    """
    Logger that takes keyword context instead of formatted strings.

    ``bind`` returns a child that adds fixed context to every line, e.g. the
    batch a queue entry belongs to.
    """

    def __init__(self, name: str, bound: Optional[Dict[str, Any]] = None):
        self.name = name
        self.bound = dict(bound or {})
        self.logger = logging.getLogger(name)

        if not getattr(self.logger, "_mail_configured", False):
            self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
            self.logger.handlers = []
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(StructuredFormatter() if LOG_FORMAT == "json" else TextFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False
            self.logger._mail_configured = True

    def bind(self, **context) -> "StructuredLogger":
        return StructuredLogger(self.name, {**self.bound, **context})

    def _log(self, level: int, message: str, error: Optional[BaseException] = None, **context):
        if not self.logger.isEnabledFor(level):
            return
        merged = {**self.bound, **context}
        if error is not None:
            merged["error_type"] = type(error).__name__
            merged["error_message"] = str(error)
            if error.__traceback__ is not None:
                merged["traceback"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        self.logger.log(level, message, extra={"context": _scrub(merged), "logger_name": self.name})

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, error: Optional[BaseException] = None, **context):
        self._log(logging.ERROR, message, error=error, **context)

    def critical(self, message: str, error: Optional[BaseException] = None, **context):
        self._log(logging.CRITICAL, message, error=error, **context)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": getattr(record, "logger_name", record.name),
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "context", {}))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Readable single-line output for local runs"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[90m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        line = f"{color}[{stamp}] [{record.levelname}]{self.RESET} {record.getMessage()}"

        context = getattr(record, "context", {})
        pairs = " ".join(f"{k}={v}" for k, v in context.items() if k != "traceback")
        if pairs:
            line += f" {self.DIM}({pairs}){self.RESET}"
        if "traceback" in context:
            line += "\n" + context["traceback"]
        return line


# ============================================================
# TIMING
# ============================================================

def timed(logger: StructuredLogger):
    """Log how long the wrapped call took, and whether it raised"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{func.__name__} failed",
                    error=e,
                    function=func.__name__,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                )
                raise
            logger.debug(
                f"{func.__name__} completed",
                function=func.__name__,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return result

        return wrapper

    return decorator


# ============================================================
# LOGGER INSTANCES
# ============================================================

api_logger = StructuredLogger("mail.api")
queue_logger = StructuredLogger("mail.queue")
webhook_logger = StructuredLogger("mail.webhooks")
db_logger = StructuredLogger("mail.db")


def get_logger(name: str) -> StructuredLogger:
    """Logger under the ``mail.`` namespace"""
    return StructuredLogger(f"mail.{name}")
