"""In-process request counters exposed at ``/metrics``."""

from collections import defaultdict
from dataclasses import dataclass


@dataclass
class _Counter:
    count: int = 0
    errors: int = 0
    latency_total_ms: float = 0.0

    def add(self, duration_ms: float, error: bool) -> None:
        self.count += 1
        self.latency_total_ms += duration_ms
        if error:
            self.errors += 1

    @property
    def avg_latency_ms(self) -> float:
        return self.latency_total_ms / self.count if self.count else 0.0


class RequestMetrics:
    """Totals plus one counter per route template (``/api/gifts/{public_id}``)."""

    def __init__(self) -> None:
        self._total = _Counter()
        self._by_path: defaultdict[str, _Counter] = defaultdict(_Counter)

    def record(self, path: str, duration_ms: float, error: bool) -> None:
        self._total.add(duration_ms, error)
        self._by_path[path].add(duration_ms, error)

    def snapshot(self) -> dict[str, object]:
        return {
            "requests_total": self._total.count,
            "errors_total": self._total.errors,
            "avg_latency_ms": self._total.avg_latency_ms,
            "by_path": {
                path: {
                    "count": counter.count,
                    "errors": counter.errors,
                    "avg_latency_ms": counter.avg_latency_ms,
                }
                for path, counter in self._by_path.items()
            },
        }

    def reset(self) -> None:
        self._total = _Counter()
        self._by_path.clear()
