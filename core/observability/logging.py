"""
Structured Logging with Correlation IDs

Every log line written while a sync pipeline runs carries where it came from:
- pipeline: material_requests, work_orders, stock_sync or products
- request_id: Infraspeak material request being processed
- order_id / order_type: Work order or planned order being posted
- workflow_id / activity_name: Temporal execution that ran the pipeline

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(pipeline="material_requests", request_id="A1"):
        logger.info("Posting material request", extra_fields={"stock_moves": 2})

The level and format default to SYNC_LOG_LEVEL / SYNC_LOG_FORMAT ("json" or
"text") when configure_logging() is called without arguments.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union


SERVICE_NAME = "odoospeak-sync"

APP_LOGGERS = (
    "activities",
    "api",
    "connectors",
    "core",
    "pipelines",
    "posting",
    "reconciliation",
    "storage",
    "workers",
    "workflows",
)

QUIET_LOGGERS = ("aiohttp", "uvicorn.access")


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Identifiers attached to every log record of one pipeline run."""
    pipeline: Optional[str] = None
    request_id: Optional[str] = None
    order_id: Optional[str] = None
    order_type: Optional[str] = None
    workflow_id: Optional[str] = None
    workflow_run_id: Optional[str] = None
    activity_name: Optional[str] = None
    task_queue: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """New context; None values leave the current ones in place."""
        data = self.to_dict()
        data.update({k: v for k, v in kwargs.items() if v is not None})
        return CorrelationContext(**data)

    def label(self) -> str:
        """Short form for text logs, e.g. material_requests/req:A1/Work Order 77."""
        parts = []
        if self.pipeline:
            parts.append(self.pipeline)
        if self.workflow_id:
            parts.append(self.workflow_id[:12])
        if self.request_id:
            parts.append(f"req:{self.request_id}")
        if self.order_id:
            parts.append(f"{self.order_type or 'order'} {self.order_id}")
        return "/".join(parts) or "-"


_correlation_context: ContextVar[CorrelationContext] = ContextVar(
    "sync_correlation_context",
    default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _correlation_context.get()


def set_correlation_context(ctx: CorrelationContext) -> None:
    _correlation_context.set(ctx)


@contextmanager
def with_correlation(**kwargs) -> Iterator[CorrelationContext]:
    """
    Add correlation ids for the duration of the block.

    Contexts nest: inner blocks inherit the outer ids. Each asyncio task sees
    its own copy, so concurrent postings do not mix their ids.
    """
    token = _correlation_context.set(get_correlation_context().merge(**kwargs))
    try:
        yield _correlation_context.get()
    finally:
        _correlation_context.reset(token)


def _record_context(record: logging.LogRecord) -> CorrelationContext:
    """Context stamped by CorrelationFilter, else the current one."""
    ctx = getattr(record, "correlation", None)
    return ctx if isinstance(ctx, CorrelationContext) else get_correlation_context()


class CorrelationFilter(logging.Filter):
    """Stamps records with the context active when they were created."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation"):
            record.correlation = get_correlation_context()
        return True


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line:

    {"timestamp": "2024-01-09T12:00:00.000000Z", "level": "INFO",
     "logger": "posting.poster", "message": "Created stock move 501",
     "service": "odoospeak-sync", "pipeline": "material_requests", "request_id": "A1"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
        }
        log_data.update(_record_context(record).to_dict())
        log_data.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info:
            log_data["error_type"] = record.exc_info[0].__name__
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    2024-01-09 12:00:00 [INFO ] posting.poster [material_requests/req:A1/Work Order 77]: Created stock move 501
    """

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        msg = (
            f"{self.formatTime(record, self.datefmt)} [{record.levelname:5}] {record.name} "
            f"[{_record_context(record).label()}]: {record.getMessage()}"
        )
        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)
        return msg


# =============================================================================
# Logger with per-call fields
# =============================================================================

class CorrelatedLogger(logging.LoggerAdapter):
    """
    Logger that accepts extra_fields on each call.

        logger.info("Posted journal", extra_fields={"account_move_id": 900})
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        extra_fields = kwargs.pop("extra_fields", None) or {}
        extra = dict(kwargs.get("extra") or {})
        extra["extra_fields"] = extra_fields
        kwargs["extra"] = extra
        return msg, kwargs


# =============================================================================
# Configuration
# =============================================================================

_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.getenv("SYNC_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        value = logging.getLevelName(level.upper())
        return value if isinstance(value, int) else logging.INFO
    return level


def configure_logging(
    level: Union[int, str, None] = None,
    json_format: Optional[bool] = None,
    include_temporal: bool = True,
) -> None:
    """
    Install one stdout handler on the root logger. Later calls are no-ops.

    Args:
        level: Level or level name (default SYNC_LOG_LEVEL, then INFO)
        json_format: JSON lines instead of text (default SYNC_LOG_FORMAT == "json")
        include_temporal: Keep temporalio SDK logs at INFO
    """
    global _configured

    if _configured:
        return

    resolved = _resolve_level(level)
    if json_format is None:
        json_format = os.getenv("SYNC_LOG_FORMAT", "text").lower() == "json"

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    handler.addFilter(CorrelationFilter())
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.setLevel(resolved)
    root.addHandler(handler)

    for name in APP_LOGGERS:
        logging.getLogger(name).setLevel(resolved)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if include_temporal:
        logging.getLogger("temporalio").setLevel(logging.INFO)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    """CorrelatedLogger for name. Output goes wherever configure_logging() sent it."""
    if name not in _loggers:
        _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return _loggers[name]


# =============================================================================
# Activity lifecycle
# =============================================================================

def _activity_logger(activity_name: str) -> CorrelatedLogger:
    return get_logger(f"activities.{activity_name}")


def log_activity_start(activity_name: str, **fields) -> None:
    _activity_logger(activity_name).info(f"Activity started: {activity_name}", extra_fields=fields)


def log_activity_complete(activity_name: str, duration_ms: Optional[float] = None, **fields) -> None:
    if duration_ms is not None:
        fields["duration_ms"] = duration_ms
    _activity_logger(activity_name).info(f"Activity completed: {activity_name}", extra_fields=fields)


def log_activity_error(activity_name: str, error: str, **fields) -> None:
    _activity_logger(activity_name).error(f"Activity failed: {activity_name} - {error}", extra_fields=fields)
