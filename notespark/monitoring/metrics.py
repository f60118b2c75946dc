"""
Process-wide usage metrics owned by a pipeline instance.

Counters only ever increase until an explicit reset(); failures increment
failure counters and are never rolled back. All updates go through the
recorder's methods under a lock.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..extraction.models import ProcessingDecision

logger = logging.getLogger(__name__)

OCR_SAVINGS_FACTOR = 0.95


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OperationStats:
    successes: int = 0
    failures: int = 0


@dataclass
class ErrorRecord:
    method: str
    error: str
    timestamp: datetime = field(default_factory=utc_now)


class MetricsRecorder:
    """Thread-safe counters and running averages."""

    def __init__(self, max_recent_errors: int = 50):
        self._lock = threading.Lock()
        self._max_recent_errors = max_recent_errors
        self._reset_state()
        logger.info("MetricsRecorder initialized")

    def _reset_state(self) -> None:
        self.total_requests = 0
        self.total_images = 0
        self.successes = 0
        self.failures = 0
        self.decision_counts: Dict[str, int] = {d.value: 0 for d in ProcessingDecision}
        self.failures_by_method: Dict[str, int] = {}
        self.operations: Dict[str, OperationStats] = {}
        self.total_bytes_processed = 0
        self._confidence_sum = 0.0
        self._latency_sum_ms = 0.0
        self._recent_errors: List[ErrorRecord] = []
        self.last_success: Optional[datetime] = None
        self.last_error: Optional[datetime] = None
        self.started_at = utc_now()

    def record_request(self, image_count: int = 1, total_bytes: int = 0) -> None:
        with self._lock:
            self.total_requests += 1
            self.total_images += image_count
            self.total_bytes_processed += total_bytes

    def record_outcome(self, decision: ProcessingDecision, confidence: float, latency_ms: float) -> None:
        """Record a successful request and the path that served it."""
        with self._lock:
            self.successes += 1
            self.decision_counts[decision.value] += 1
            self._confidence_sum += confidence
            self._latency_sum_ms += latency_ms
            self.last_success = utc_now()

    def record_failure(self, method: str, error: BaseException) -> None:
        with self._lock:
            self.failures += 1
            self.failures_by_method[method] = self.failures_by_method.get(method, 0) + 1
            self.last_error = utc_now()
            self._recent_errors.append(ErrorRecord(method=method, error=str(error)))
            if len(self._recent_errors) > self._max_recent_errors:
                self._recent_errors.pop(0)

    def record_operation(self, name: str, success: bool) -> None:
        """Terminal outcome of one retried provider operation."""
        with self._lock:
            stats = self.operations.setdefault(name, OperationStats())
            if success:
                stats.successes += 1
            else:
                stats.failures += 1

    def reset(self) -> None:
        with self._lock:
            self._reset_state()
        logger.info("Metrics reset")

    def get_recent_errors(self, limit: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {"method": e.method, "error": e.error, "timestamp": e.timestamp.isoformat()}
                for e in self._recent_errors[-limit:]
            ]

    def get_processing_stats(self) -> Dict[str, Any]:
        """
        Usage summary.

        ocr_percentage counts requests served without the multimodal provider;
        estimated_cost_savings is that share scaled by the typical OCR discount.
        """
        with self._lock:
            total = self.total_requests
            ocr_served = (
                self.decision_counts[ProcessingDecision.OCR_ONLY.value]
                + self.decision_counts[ProcessingDecision.HYBRID_BATCH.value]
            )
            multimodal_served = (
                self.decision_counts[ProcessingDecision.MULTIMODAL_FALLBACK.value]
                + self.decision_counts[ProcessingDecision.INDIVIDUAL_FALLBACK.value]
            )
            ocr_percentage = ocr_served / total * 100 if total else 0.0
            multimodal_percentage = multimodal_served / total * 100 if total else 0.0

            return {
                "total_requests": total,
                "total_images": self.total_images,
                "successes": self.successes,
                "failures": self.failures,
                "success_rate": round(self.successes / total * 100, 2) if total else 0.0,
                "decisions": dict(self.decision_counts),
                "ocr_percentage": round(ocr_percentage, 2),
                "multimodal_percentage": round(multimodal_percentage, 2),
                "estimated_cost_savings": f"{round(ocr_percentage * OCR_SAVINGS_FACTOR)}%",
                "average_confidence": self._confidence_sum / self.successes if self.successes else 0.0,
                "average_latency_ms": self._latency_sum_ms / self.successes if self.successes else 0.0,
                "failures_by_method": dict(self.failures_by_method),
                "operations": {
                    name: {"successes": s.successes, "failures": s.failures}
                    for name, s in self.operations.items()
                },
                "total_data_processed": format_bytes(self.total_bytes_processed),
            }


def format_bytes(size: int) -> str:
    """Human-readable byte count."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
