"""
Metric primitives used by statement instrumentation.

- Counter: monotonically increasing value (statement executions)
- Gauge: value that goes up and down (statements in flight)
- Histogram: bucketed distribution (statement duration)

Every metric is keyed by a label set and is safe to update from several
threads.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

LabelKey = Tuple[Tuple[str, str], ...]


def _labels_key(labels: Optional[Dict[str, str]]) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


@dataclass
class MetricSample:
    """Value of one metric for one label set."""

    labels: Dict[str, str]
    value: float


class Counter:
    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._values: Dict[LabelKey, float] = defaultdict(float)
        self._lock = threading.Lock()

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        if amount < 0:
            raise ValueError("Counters can only increase")
        with self._lock:
            self._values[_labels_key(labels)] += amount

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._values.get(_labels_key(labels), 0.0)

    def samples(self) -> List[MetricSample]:
        with self._lock:
            return [
                MetricSample(labels=dict(key), value=value)
                for key, value in self._values.items()
            ]


class Gauge:
    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._values: Dict[LabelKey, float] = {}
        self._lock = threading.Lock()

    def set(self, value: float, labels: Optional[Dict[str, str]] = None):
        with self._lock:
            self._values[_labels_key(labels)] = value

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        key = _labels_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def dec(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        self.inc(labels, -amount)

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._values.get(_labels_key(labels), 0.0)

    def samples(self) -> List[MetricSample]:
        with self._lock:
            return [
                MetricSample(labels=dict(key), value=value)
                for key, value in self._values.items()
            ]


class Histogram:
    """
    Distribution of observed values.

    Bucket counts are cumulative: an observation is counted in every bucket
    whose upper bound it does not exceed.
    """

    # Seconds, tuned for database round trips
    DEFAULT_BUCKETS = [0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0]

    def __init__(
        self, name: str, help_text: str = "", buckets: Optional[List[float]] = None
    ):
        self.name = name
        self.help_text = help_text
        self.buckets = sorted(buckets or self.DEFAULT_BUCKETS)
        self._counts: Dict[LabelKey, List[int]] = {}
        self._sum: Dict[LabelKey, float] = defaultdict(float)
        self._count: Dict[LabelKey, int] = defaultdict(int)
        self._lock = threading.Lock()

    def observe(self, value: float, labels: Optional[Dict[str, str]] = None):
        key = _labels_key(labels)
        with self._lock:
            counts = self._counts.setdefault(key, [0] * len(self.buckets))
            for i, upper_bound in enumerate(self.buckets):
                if value <= upper_bound:
                    counts[i] += 1
            self._sum[key] += value
            self._count[key] += 1

    def get_sum(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._sum.get(_labels_key(labels), 0.0)

    def get_count(self, labels: Optional[Dict[str, str]] = None) -> int:
        with self._lock:
            return self._count.get(_labels_key(labels), 0)

    def get_buckets(
        self, labels: Optional[Dict[str, str]] = None
    ) -> List[Tuple[float, int]]:
        key = _labels_key(labels)
        with self._lock:
            counts = self._counts.get(key, [0] * len(self.buckets))
            return list(zip(self.buckets, counts))

    def samples(
        self,
    ) -> List[Tuple[Dict[str, str], float, int, List[Tuple[float, int]]]]:
        """(labels, sum, count, buckets) for every label set."""
        with self._lock:
            return [
                (
                    dict(key),
                    self._sum[key],
                    self._count[key],
                    list(zip(self.buckets, self._counts[key])),
                )
                for key in self._count
            ]


class MetricsStorage:
    """Named metrics, created on first use."""

    def __init__(self):
        self.counters: Dict[str, Counter] = {}
        self.gauges: Dict[str, Gauge] = {}
        self.histograms: Dict[str, Histogram] = {}
        self.enabled = False
        self._lock = threading.Lock()

    def enable(self):
        self.enabled = True

    def disable(self):
        self.enabled = False

    def counter(self, name: str, help_text: str = "") -> Counter:
        with self._lock:
            if name not in self.counters:
                self.counters[name] = Counter(name, help_text)
            return self.counters[name]

    def gauge(self, name: str, help_text: str = "") -> Gauge:
        with self._lock:
            if name not in self.gauges:
                self.gauges[name] = Gauge(name, help_text)
            return self.gauges[name]

    def histogram(
        self, name: str, help_text: str = "", buckets: Optional[List[float]] = None
    ) -> Histogram:
        with self._lock:
            if name not in self.histograms:
                self.histograms[name] = Histogram(name, help_text, buckets)
            return self.histograms[name]

    def reset(self):
        with self._lock:
            self.counters.clear()
            self.gauges.clear()
            self.histograms.clear()
