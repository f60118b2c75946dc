"""
Metrics, cost estimation and structured logging.
"""

from .metrics import MetricsRecorder
from .cost import CostEstimator, PRICING
from .structured_logging import StructuredLogger, configure_json_logging, trace_operation

__all__ = [
    "MetricsRecorder",
    "CostEstimator",
    "PRICING",
    "StructuredLogger",
    "configure_json_logging",
    "trace_operation",
]
