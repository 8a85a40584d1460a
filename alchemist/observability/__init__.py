"""
Observability module - Logging, Metrics, and Tracing.
"""

from alchemist.observability.logging import get_logger, setup_logging
from alchemist.observability.metrics import metrics
from alchemist.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
