"""In-memory counters and distributions for the order workflow."""

from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from time import perf_counter
from typing import Iterator, Mapping

LabelValues = tuple[str, ...]


class _Metric:
    def __init__(self, name: str, *, description: str = "", label_names: tuple[str, ...] = ()) -> None:
        self.name = name
        self.description = description
        self.label_names = label_names
        self._lock = Lock()

    def _key(self, labels: Mapping[str, str] | None) -> LabelValues:
        labels = labels or {}
        missing = [label for label in self.label_names if label not in labels]
        if missing:
            raise ValueError(f"Metric '{self.name}' is missing labels {missing}")
        extra = set(labels) - set(self.label_names)
        if extra:
            raise ValueError(f"Metric '{self.name}' does not accept labels {sorted(extra)}")
        return tuple(str(labels[label]) for label in self.label_names)


class Counter(_Metric):
    def __init__(self, name: str, *, description: str = "", label_names: tuple[str, ...] = ()) -> None:
        super().__init__(name, description=description, label_names=label_names)
        self._values: dict[LabelValues, float] = defaultdict(float)

    def inc(self, amount: float = 1.0, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] += amount

    def value(self, *, labels: Mapping[str, str] | None = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> dict[LabelValues, dict[str, float]]:
        with self._lock:
            return {key: {"value": value} for key, value in self._values.items()}


@dataclass
class _Stats:
    count: int = 0
    total: float = 0.0
    maximum: float = 0.0

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.maximum = max(self.maximum, value)


class Distribution(_Metric):
    def __init__(self, name: str, *, description: str = "", label_names: tuple[str, ...] = ()) -> None:
        super().__init__(name, description=description, label_names=label_names)
        self._values: dict[LabelValues, _Stats] = defaultdict(_Stats)

    def observe(self, value: float, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key].observe(value)

    @contextmanager
    def time(self, *, labels: Mapping[str, str] | None = None) -> Iterator[None]:
        start = perf_counter()
        try:
            yield
        finally:
            self.observe(perf_counter() - start, labels=labels)

    def snapshot(self) -> dict[LabelValues, dict[str, float]]:
        with self._lock:
            return {
                key: {
                    "count": float(stats.count),
                    "sum": stats.total,
                    "max": stats.maximum,
                    "avg": stats.total / stats.count if stats.count else 0.0,
                }
                for key, stats in self._values.items()
            }


class WorkflowMetrics:
    """Metrics emitted by the service order workflow."""

    def __init__(self) -> None:
        self.transitions = Counter(
            "service_order_transitions_total",
            description="Committed status transitions by target status.",
            label_names=("status",),
        )
        self.gate_blocks = Counter(
            "service_order_gate_blocks_total",
            description="Notifying transitions rejected because of unconfirmed services.",
        )
        self.rejections = Counter(
            "service_order_rejections_total",
            description="Transition requests rejected before mutation.",
            label_names=("reason",),
        )
        self.notifications = Counter(
            "service_order_notifications_total",
            description="Client notifications by outcome.",
            label_names=("outcome",),
        )
        self.edits = Counter(
            "service_order_edits_total",
            description="Detail edits that produced an audit entry.",
        )
        self.transition_duration = Distribution(
            "service_order_transition_duration_seconds",
            description="Time spent validating and committing a transition.",
        )

    def snapshot(self) -> dict[str, dict[str, dict[str, float]]]:
        """Serialisable view keyed by metric name, then by comma-joined label values."""

        metrics = (
            self.transitions,
            self.gate_blocks,
            self.rejections,
            self.notifications,
            self.edits,
            self.transition_duration,
        )
        return {
            metric.name: {",".join(key): values for key, values in metric.snapshot().items()}
            for metric in metrics
        }
