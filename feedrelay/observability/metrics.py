"""In-process counters for requests and the message pipeline.

Exposed as JSON at ``GET /metrics``; nothing is exported to an external collector.
"""

from __future__ import annotations

from collections import Counter, deque
from threading import Lock


def _percentile(sorted_values: list[float], p: float) -> float:
    if not sorted_values:
        return 0.0
    return round(sorted_values[int((len(sorted_values) - 1) * p)], 2)


class InMemoryMetrics:
    def __init__(self, latency_window: int = 2000) -> None:
        self._lock = Lock()
        self._requests_total = 0
        self._status_counts: Counter[str] = Counter()
        self._path_counts: Counter[str] = Counter()
        self._latencies_ms: deque[float] = deque(maxlen=latency_window)
        self._outcomes: Counter[str] = Counter()
        self._forwarded_by_platform: Counter[str] = Counter()
        self._dispatch_errors: Counter[str] = Counter()

    # ── HTTP ─────────────────────────────────────────────────────
    def observe_request(self, path: str, status_code: int, duration_ms: float) -> None:
        with self._lock:
            self._requests_total += 1
            self._status_counts[f"{status_code // 100}xx"] += 1
            self._path_counts[path] += 1
            self._latencies_ms.append(float(duration_ms))

    # ── Pipeline ─────────────────────────────────────────────────
    def observe_message(self, platform: str, outcome: str) -> None:
        """Count one pipeline outcome: ``forwarded``, ``duplicate`` or ``filtered``."""
        with self._lock:
            self._outcomes[outcome] += 1
            if outcome == "forwarded":
                self._forwarded_by_platform[platform] += 1

    def observe_dispatch_error(self, source_id: str) -> None:
        with self._lock:
            self._dispatch_errors[source_id] += 1

    def snapshot(self) -> dict:
        with self._lock:
            latencies = sorted(self._latencies_ms)
            return {
                "requests_total": self._requests_total,
                "status_counts": dict(self._status_counts),
                "path_counts": dict(self._path_counts),
                "latency_ms": {
                    "samples": len(latencies),
                    "p50": _percentile(latencies, 0.50),
                    "p95": _percentile(latencies, 0.95),
                    "p99": _percentile(latencies, 0.99),
                },
                "messages": {
                    "outcomes": dict(self._outcomes),
                    "forwarded_by_platform": dict(self._forwarded_by_platform),
                    "dispatch_errors": dict(self._dispatch_errors),
                },
            }


metrics = InMemoryMetrics()
