"""
Observability module for the RDL generator.

Provides:
- Structured logging with JSON format and correlation IDs
- A document correlation ID that links every log line of one conversion
- Prometheus metrics collection (translation, sandbox, schema)

Usage:
    from rdlgen.core.observability import (
        configure_structured_logging,
        set_correlation_id,
        metrics,
    )
"""

import json
import logging
import uuid
from contextvars import ContextVar, Token
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

# ============================================================================
# Context Variables
# ============================================================================

# Correlation ID - links all logs for a single document conversion
_correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for one document conversion."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return _correlation_id_ctx.get()


def set_correlation_id(correlation_id: str) -> Token[str]:
    """Set the correlation ID for the current context; returns a token for reset."""
    return _correlation_id_ctx.set(correlation_id)


def reset_correlation_id(token: Token[str]) -> None:
    """Restore the correlation ID that was current before ``set_correlation_id``."""
    _correlation_id_ctx.reset(token)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - correlation_id: Document conversion ID (if available)
    - extra: Any additional context from logging.extra
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Python logging LogRecord

        Returns:
            JSON-formatted log string
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        # Fields passed via logger.info("msg", extra={"key": "value"})
        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO", structured: bool = True) -> None:
    """
    Configure root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Emit JSON lines when True, plain text otherwise
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root_logger.addHandler(handler)


def configure_from_settings() -> None:
    """Configure logging from application settings."""
    from rdlgen.core.config import settings

    configure_structured_logging(
        settings.app_log_level, structured=settings.observability_structured_logs
    )


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with other Prometheus metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics collection for the generator.

    Metrics groups:
    - Translation: field code outcomes and duration
    - Sandbox: rule violations found in generated expressions
    - Schema: synthesized documents and validation failures
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        """Initialize all metrics with proper labels."""
        self.registry = registry

        # -------------------------------------------------------------------
        # Translation Metrics
        # -------------------------------------------------------------------

        self.translations_total = Counter(
            "rdlgen_translations_total",
            "Total field code translations",
            ["status", "category"],
            registry=self.registry,
        )

        self.translation_duration_seconds = Histogram(
            "rdlgen_translation_duration_seconds",
            "Field code translation duration in seconds",
            ["category"],
            buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0),
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Sandbox Metrics
        # -------------------------------------------------------------------

        self.sandbox_violations_total = Counter(
            "rdlgen_sandbox_violations_total",
            "Sandbox rule violations in generated expressions",
            ["code"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Schema Metrics
        # -------------------------------------------------------------------

        self.documents_synthesized_total = Counter(
            "rdlgen_documents_synthesized_total",
            "Report definition documents synthesized",
            registry=self.registry,
        )

        self.schema_validation_failures_total = Counter(
            "rdlgen_schema_validation_failures_total",
            "Synthesized documents rejected by schema validation",
            registry=self.registry,
        )


# Global metrics instance
metrics = Metrics(_registry)


def render_metrics() -> bytes:
    """Return all metrics in Prometheus text exposition format."""
    return generate_latest(_registry)
