"""
ThreadSpire counters, exported at /metrics in Prometheus text format.

Counters live in process memory and reset on restart. Mutation counters are
bumped by the services after a write succeeds; HTTP counters by
MetricsMiddleware with the path collapsed through normalize_path().
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple

LabelValues = Tuple[str, ...]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\"", "\\\"")


class Counter:
    """Monotonic counter keyed by label values, e.g. reactions_total{action="added"}."""

    def __init__(self, name: str, label_names: Optional[Iterable[str]] = None):
        self.name = name
        self.label_names = list(label_names or [])
        self._values: Dict[LabelValues, float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelValues:
        # Unknown label names are ignored; missing ones count as ""
        labels = labels or {}
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + float(amount)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        """
        Current count for one label combination, 0.0 if never incremented.

        Tests read mutation counts this way, e.g.
        thread_mutations_total.value({"type": "publish"}).
        """
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def _render_labels(self, values: LabelValues) -> str:
        if not self.label_names:
            return ""
        pairs = ",".join(f'{name}="{_escape(v)}"' for name, v in zip(self.label_names, values))
        return "{" + pairs + "}"

    def export(self) -> List[str]:
        with self._lock:
            samples = sorted(self._values.items())
        return [f"# TYPE {self.name} counter"] + [
            f"{self.name}{self._render_labels(values)} {count}" for values, count in samples
        ]

    def reset(self) -> None:
        with self._lock:
            self._values.clear()


class MetricsRegistry:
    def __init__(self):
        self.counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, label_names: Optional[Iterable[str]] = None) -> Counter:
        """Get or register a counter; later label_names for an existing name are ignored."""
        with self._lock:
            return self.counters.setdefault(name, Counter(name, label_names))

    def export_prometheus(self) -> str:
        lines: List[str] = []
        for counter in list(self.counters.values()):
            lines.extend(counter.export())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Zero every counter; registrations are kept."""
        for counter in self.counters.values():
            counter.reset()


METRICS = MetricsRegistry()

# HTTP traffic
http_requests_total = METRICS.counter("http_requests_total", ["method", "path", "status"])

# Domain mutations
thread_mutations_total = METRICS.counter("thread_mutations_total", ["type"])  # create|fork|update|publish|delete
reactions_total = METRICS.counter("reactions_total", ["action"])
bookmarks_total = METRICS.counter("bookmarks_total", ["action"])  # added|removed

# Optimistic-concurrency saves that lost the compare-and-set
store_conflicts_total = METRICS.counter("store_conflicts_total", ["collection"])


_ID_SEGMENT = re.compile(r"^[0-9a-fA-F-]{8,}$")


def normalize_path(path: str) -> str:
    """/api/threads/<uuid>/bookmark -> /api/threads/:id/bookmark"""
    segments = [s for s in path.split("/") if s]
    return "/" + "/".join(":id" if s.isdigit() or _ID_SEGMENT.match(s) else s for s in segments)
