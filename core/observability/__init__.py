"""
Observability Module for the sync pipelines

Provides:
- Structured logging with correlation IDs (pipeline, request, order, workflow)
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    get_correlation_context,
    with_correlation,
    log_activity_start,
    log_activity_complete,
    log_activity_error,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "get_correlation_context",
    "with_correlation",
    "log_activity_start",
    "log_activity_complete",
    "log_activity_error",
]
