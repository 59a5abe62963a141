"""Metrics service for tracking resolution performance.

One instance lives on ``app.state`` and tracks resolution count, latency
and which tier produced each result.
"""

import threading
from collections import Counter
from typing import Dict, Optional


class MetricsService:
    """Thread-safe counters and latency tracking for resolutions."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def record_resolution(self, latency_ms: float, tier: Optional[str] = None) -> None:
        """Record a resolution with its latency.

        Args:
            latency_ms: Latency in milliseconds
            tier: Name of the tier that produced the result, None when empty
        """
        with self._lock:
            self._resolution_count += 1
            self._total_latency_ms += latency_ms

            if latency_ms < self._min_latency_ms:
                self._min_latency_ms = latency_ms

            if latency_ms > self._max_latency_ms:
                self._max_latency_ms = latency_ms

            if tier is None:
                self._empty_results += 1
            else:
                self._tier_wins[tier] += 1

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with metrics including:
            - resolution_count: Total number of resolutions
            - average_latency_ms: Average latency in milliseconds
            - min_latency_ms: Minimum latency observed
            - max_latency_ms: Maximum latency observed
            - tier_wins: Resolutions answered by each tier
            - empty_results: Resolutions that returned nothing
        """
        with self._lock:
            avg_latency = (
                self._total_latency_ms / self._resolution_count
                if self._resolution_count > 0
                else 0.0
            )

            return {
                "resolution_count": self._resolution_count,
                "average_latency_ms": round(avg_latency, 2),
                "min_latency_ms": round(self._min_latency_ms, 2) if self._min_latency_ms != float('inf') else 0.0,
                "max_latency_ms": round(self._max_latency_ms, 2),
                "tier_wins": dict(self._tier_wins),
                "empty_results": self._empty_results,
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._resolution_count = 0
            self._total_latency_ms = 0.0
            self._min_latency_ms = float('inf')
            self._max_latency_ms = 0.0
            self._tier_wins: Counter = Counter()
            self._empty_results = 0
