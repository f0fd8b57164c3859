"""
In-process counters for the metered action pipeline, exposed in Prometheus
text format at GET /metrics.

Counters cover HTTP traffic, model attempts by outcome, classified generation
failures, and ledger settlements (free vs metered, plus failed writes that
need reconciliation).
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple

LabelKey = Tuple[str, ...]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace("\"", "\\\"")


def _render_labels(names: List[str], values: LabelKey) -> str:
    if not names:
        return ""
    pairs = ",".join(f'{name}="{_escape(val)}"' for name, val in zip(names, values))
    return "{" + pairs + "}"


class Counter:
    def __init__(self, name: str, help_text: str, label_names: Optional[Iterable[str]] = None):
        self.name = name
        self.help_text = help_text
        self.label_names = list(label_names or [])
        self._series: Dict[LabelKey, float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelKey:
        labels = labels or {}
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        key = self._key(labels)
        with self._lock:
            self._series[key] = self._series.get(key, 0.0) + float(amount)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of one labelled series (0.0 if never incremented)."""
        key = self._key(labels)
        with self._lock:
            return self._series.get(key, 0.0)

    def samples(self) -> List[str]:
        lines = [f"# HELP {self.name} {self.help_text}", f"# TYPE {self.name} counter"]
        with self._lock:
            for key, value in sorted(self._series.items()):
                lines.append(f"{self.name}{_render_labels(self.label_names, key)} {value}")
        return lines

    def reset(self):
        with self._lock:
            self._series.clear()


class MetricsRegistry:
    def __init__(self):
        self._counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, help_text: str, label_names: Optional[Iterable[str]] = None) -> Counter:
        with self._lock:
            existing = self._counters.get(name)
            if existing is None:
                existing = self._counters[name] = Counter(name, help_text, label_names)
            return existing

    def export_prometheus(self) -> str:
        lines: List[str] = []
        for counter in self._counters.values():
            lines.extend(counter.samples())
        return "\n".join(lines) + "\n"

    def reset(self):
        for counter in self._counters.values():
            counter.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter(
    "http_requests_total", "HTTP requests by method, route and status", ["method", "path", "status"]
)
generation_attempts_total = METRICS.counter(
    "generation_attempts_total", "Image model attempts by outcome", ["outcome"]
)
generation_failures_total = METRICS.counter(
    "generation_failures_total", "Image requests that ended in a classified error", ["error"]
)
ledger_settlements_total = METRICS.counter(
    "ledger_settlements_total", "Settled actions by type and whether a free use was consumed", ["action_type", "free"]
)
ledger_settlement_failures_total = METRICS.counter(
    "ledger_settlement_failures_total", "Successful actions whose settlement was not recorded", ["action_type"]
)


_ID_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F-]{8,})$")


def normalize_path(path: str) -> str:
    """Collapse numeric and UUID segments to :id so routes stay low-cardinality."""
    segments = [":id" if _ID_SEGMENT.match(s) else s for s in path.split("/") if s]
    return "/" + "/".join(segments)
