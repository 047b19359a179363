"""Process-lifetime counters for extraction requests and fallback usage.

A ``DirectorMetrics`` instance is created by the caller and injected into the
pipeline and fallback processor; there is no module-level instance. Updates
are guarded by a lock so concurrent director runs may share one.
"""

from __future__ import annotations

from collections import Counter
import dataclasses
from datetime import UTC, datetime
import threading
from typing import Any

from storyboard_director.core.types import ExtractionMethod

TOP_REASONS = 5


@dataclasses.dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    """Deep-copied view of the counters at one point in time."""

    total_fallback_usages: int
    last_fallback_timestamp: datetime | None
    fallback_reasons: dict[str, int]
    total_requests: int
    successful_requests: int
    failed_requests: int
    average_processing_time_ms: float
    extraction_method_breakdown: dict[ExtractionMethod, int]
    last_request_timestamp: datetime | None

    @property
    def success_rate(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.successful_requests / self.total_requests

    @property
    def fallback_rate(self) -> float:
        if not self.total_requests:
            return 0.0
        fallback = self.extraction_method_breakdown.get(ExtractionMethod.FALLBACK_TEXT, 0)
        return fallback / self.total_requests

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_fallback_usages": self.total_fallback_usages,
            "last_fallback_timestamp": (
                self.last_fallback_timestamp.isoformat()
                if self.last_fallback_timestamp
                else None
            ),
            "fallback_reasons": dict(self.fallback_reasons),
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "average_processing_time_ms": self.average_processing_time_ms,
            "extraction_method_breakdown": {
                m.value: c for m, c in self.extraction_method_breakdown.items()
            },
        }


class DirectorMetrics:
    """Counters shared by the extraction pipeline and fallback processor."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reset_unlocked()

    def _reset_unlocked(self) -> None:
        self._total_fallback_usages = 0
        self._last_fallback_timestamp: datetime | None = None
        self._fallback_reasons: Counter[str] = Counter()
        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._average_processing_time_ms = 0.0
        self._method_breakdown: Counter[ExtractionMethod] = Counter()
        self._last_request_timestamp: datetime | None = None

    def record_fallback_usage(self, reason: str) -> None:
        with self._lock:
            self._total_fallback_usages += 1
            self._last_fallback_timestamp = datetime.now(UTC)
            self._fallback_reasons[reason] += 1

    def record_request(
        self,
        *,
        success: bool,
        processing_time_ms: float,
        method: ExtractionMethod | None = None,
    ) -> None:
        """Count one extraction request and fold its time into the running average."""
        with self._lock:
            self._total_requests += 1
            if success:
                self._successful_requests += 1
            else:
                self._failed_requests += 1
            n = self._total_requests
            self._average_processing_time_ms += (
                processing_time_ms - self._average_processing_time_ms
            ) / n
            if method is not None:
                self._method_breakdown[method] += 1
            self._last_request_timestamp = datetime.now(UTC)

    def get_metrics(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                total_fallback_usages=self._total_fallback_usages,
                last_fallback_timestamp=self._last_fallback_timestamp,
                fallback_reasons=dict(self._fallback_reasons),
                total_requests=self._total_requests,
                successful_requests=self._successful_requests,
                failed_requests=self._failed_requests,
                average_processing_time_ms=self._average_processing_time_ms,
                extraction_method_breakdown=dict(self._method_breakdown),
                last_request_timestamp=self._last_request_timestamp,
            )

    def get_metrics_summary(self) -> dict[str, Any]:
        """Headline numbers: usage totals, top reasons and rates."""
        snapshot = self.get_metrics()
        breakdown = snapshot.extraction_method_breakdown
        top_reasons = Counter(snapshot.fallback_reasons).most_common(TOP_REASONS)
        return {
            "total_fallback_usages": snapshot.total_fallback_usages,
            "top_reasons": [{"reason": r, "count": c} for r, c in top_reasons],
            "last_fallback_timestamp": snapshot.last_fallback_timestamp,
            "total_requests": snapshot.total_requests,
            "success_rate": snapshot.success_rate,
            "fallback_rate": snapshot.fallback_rate,
            "average_time_ms": round(snapshot.average_processing_time_ms, 3),
            "most_used_method": (
                max(breakdown, key=lambda m: (breakdown[m], m.value)).value
                if breakdown
                else None
            ),
        }

    def reset(self) -> None:
        with self._lock:
            self._reset_unlocked()
