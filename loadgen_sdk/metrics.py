"""
Metric Aggregator - concurrent accumulation of counters, trends and rates.

Writers never coordinate with each other: each writer thread is pinned to one
of a fixed number of stripes the first time it records, and only ever takes
that stripe's lock. Stripes are merged when a snapshot is taken, so every
recorded sample is visible in a snapshot exactly once.

Trends keep a logarithmic-bucket histogram (relative error at most 0.5%)
instead of raw samples, so memory stays bounded on long soak runs.
"""

import itertools
import math
import threading
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from loadgen_sdk.common.errors import MetricTypeError
from loadgen_sdk.common.logger import get_logger

logger = get_logger(__name__)

TagKey = FrozenSet[Tuple[str, str]]
SeriesKey = Tuple[str, TagKey]

DEFAULT_STRIPES = 64

# Relative accuracy of trend percentiles
_ALPHA = 0.005
_GAMMA = (1 + _ALPHA) / (1 - _ALPHA)
_LOG_GAMMA = math.log(_GAMMA)

SUMMARY_PERCENTILES = (90, 95, 99)


class MetricKind(Enum):
    """Metric kinds supported by the aggregator."""
    COUNTER = "counter"
    TREND = "trend"
    RATE = "rate"


def tag_key(tags: Optional[Mapping[str, str]]) -> TagKey:
    """Normalize a tag mapping into a hashable key."""
    if not tags:
        return frozenset()
    return frozenset((str(k), str(v)) for k, v in tags.items())


class CounterValue:
    """Monotonic event count."""

    __slots__ = ("count",)

    def __init__(self):
        self.count = 0

    def add(self, n) -> None:
        self.count += n

    def merge(self, other: "CounterValue") -> None:
        self.count += other.count

    def copy(self) -> "CounterValue":
        clone = CounterValue()
        clone.count = self.count
        return clone

    @property
    def samples(self) -> int:
        return 1

    def summary(self, elapsed: Optional[float] = None) -> Dict[str, Any]:
        values: Dict[str, Any] = {"count": self.count}
        if elapsed:
            values["rate"] = self.count / elapsed
        return values


class RateValue:
    """Fraction of boolean samples that were true."""

    __slots__ = ("passes", "total")

    def __init__(self):
        self.passes = 0
        self.total = 0

    def add(self, outcome: bool) -> None:
        self.total += 1
        if outcome:
            self.passes += 1

    def merge(self, other: "RateValue") -> None:
        self.passes += other.passes
        self.total += other.total

    def copy(self) -> "RateValue":
        clone = RateValue()
        clone.passes = self.passes
        clone.total = self.total
        return clone

    @property
    def samples(self) -> int:
        return self.total

    @property
    def fails(self) -> int:
        return self.total - self.passes

    @property
    def rate(self) -> Optional[float]:
        if self.total == 0:
            return None
        return self.passes / self.total

    def summary(self, elapsed: Optional[float] = None) -> Dict[str, Any]:
        return {"rate": self.rate, "passes": self.passes, "fails": self.fails}


class TrendValue:
    """
    Distribution of numeric samples.

    Positive samples land in bucket ceil(log_gamma(v)); the bucket midpoint
    estimate is within _ALPHA of every value in the bucket. Zero and negative
    samples share a single bucket reported as 0.
    """

    __slots__ = ("count", "total", "min", "max", "_buckets", "_non_positive")

    def __init__(self):
        self.count = 0
        self.total = 0.0
        self.min = math.inf
        self.max = -math.inf
        self._buckets: Dict[int, int] = {}
        self._non_positive = 0

    def add(self, value: float) -> None:
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"trend samples must be finite (got {value})")
        self.count += 1
        self.total += value
        if value < self.min:
            self.min = value
        if value > self.max:
            self.max = value
        if value > 0:
            index = math.ceil(math.log(value) / _LOG_GAMMA)
            self._buckets[index] = self._buckets.get(index, 0) + 1
        else:
            self._non_positive += 1

    def merge(self, other: "TrendValue") -> None:
        self.count += other.count
        self.total += other.total
        self.min = min(self.min, other.min)
        self.max = max(self.max, other.max)
        self._non_positive += other._non_positive
        for index, n in other._buckets.items():
            self._buckets[index] = self._buckets.get(index, 0) + n

    def copy(self) -> "TrendValue":
        clone = TrendValue()
        clone.merge(self)
        return clone

    @property
    def samples(self) -> int:
        return self.count

    @property
    def avg(self) -> Optional[float]:
        if self.count == 0:
            return None
        return self.total / self.count

    def percentile(self, q: float) -> Optional[float]:
        """
        Nearest-rank percentile estimate.

        Args:
            q: Percentile in [0, 100].

        Returns:
            Estimated value clamped to the observed [min, max], or None when
            the trend has no samples.
        """
        if not 0 <= q <= 100:
            raise ValueError(f"percentile must be between 0 and 100 (got {q})")
        if self.count == 0:
            return None
        rank = max(1, math.ceil(q / 100.0 * self.count))
        estimate = 0.0
        if rank > self._non_positive:
            seen = self._non_positive
            for index in sorted(self._buckets):
                seen += self._buckets[index]
                if seen >= rank:
                    estimate = 2 * _GAMMA ** index / (_GAMMA + 1)
                    break
        return min(max(estimate, self.min), self.max)

    @property
    def med(self) -> Optional[float]:
        return self.percentile(50)

    def summary(self, elapsed: Optional[float] = None) -> Dict[str, Any]:
        if self.count == 0:
            return {"count": 0}
        values: Dict[str, Any] = {
            "avg": self.avg,
            "min": self.min,
            "med": self.med,
            "max": self.max,
        }
        for q in SUMMARY_PERCENTILES:
            values[f"p({q})"] = self.percentile(q)
        values["count"] = self.count
        return values


_FACTORIES = {
    MetricKind.COUNTER: CounterValue,
    MetricKind.TREND: TrendValue,
    MetricKind.RATE: RateValue,
}


class _Stripe:
    __slots__ = ("lock", "series")

    def __init__(self):
        self.lock = threading.Lock()
        self.series: Dict[SeriesKey, Any] = {}


class MetricsSnapshot:
    """
    Immutable merged view of the aggregator at one point in time.

    Queries take an optional tag selector: a series matches when its tags
    contain every selector pair, and all matching series are merged. With no
    selector the whole metric is aggregated.
    """

    def __init__(self, kinds: Dict[str, MetricKind], series: Dict[SeriesKey, Any]):
        self._kinds = kinds
        self._series = series

    def kind(self, name: str) -> Optional[MetricKind]:
        return self._kinds.get(name)

    def names(self) -> List[str]:
        return sorted(self._kinds)

    def _merged(self, name: str, tags: Optional[Mapping[str, str]] = None):
        kind = self._kinds.get(name)
        if kind is None:
            return None
        selector = tag_key(tags)
        merged = None
        for (series_name, series_tags), value in self._series.items():
            if series_name != name or not selector <= series_tags:
                continue
            if merged is None:
                merged = value.copy()
            else:
                merged.merge(value)
        return merged

    def value(self, name: str, tags: Optional[Mapping[str, str]] = None):
        """Return the merged accumulator for a metric, or None if never sampled."""
        return self._merged(name, tags)

    def has_data(self, name: str, tags: Optional[Mapping[str, str]] = None) -> bool:
        merged = self._merged(name, tags)
        return merged is not None and merged.samples > 0

    def counter(self, name: str, tags: Optional[Mapping[str, str]] = None):
        merged = self._merged(name, tags)
        if merged is None:
            return 0
        if not isinstance(merged, CounterValue):
            raise MetricTypeError(f"Metric '{name}' is a {self._kinds[name].value}, not a counter")
        return merged.count

    def rate(self, name: str, tags: Optional[Mapping[str, str]] = None) -> Optional[float]:
        merged = self._merged(name, tags)
        if merged is None:
            return None
        if not isinstance(merged, RateValue):
            raise MetricTypeError(f"Metric '{name}' is a {self._kinds[name].value}, not a rate")
        return merged.rate

    def trend(self, name: str, tags: Optional[Mapping[str, str]] = None) -> Optional[TrendValue]:
        merged = self._merged(name, tags)
        if merged is None:
            return None
        if not isinstance(merged, TrendValue):
            raise MetricTypeError(f"Metric '{name}' is a {self._kinds[name].value}, not a trend")
        return merged

    def aggregate(
        self,
        name: str,
        aggregation: str,
        tags: Optional[Mapping[str, str]] = None,
        percentile: Optional[float] = None,
        elapsed: Optional[float] = None,
    ) -> Optional[float]:
        """
        Reduce a metric to a single number.

        Args:
            name: Metric name.
            aggregation: avg, min, max, med, count, rate or p.
            tags: Optional tag selector.
            percentile: Percentile for the "p" aggregation.
            elapsed: Run duration in seconds, needed for counter rates.

        Returns:
            The aggregated value, or None when there is no data to aggregate.

        Raises:
            ValueError: If the aggregation does not apply to the metric kind.
        """
        kind = self._kinds.get(name)
        if kind is None or not self.has_data(name, tags):
            return None

        if kind is MetricKind.TREND:
            trend = self.trend(name, tags)
            if aggregation == "count":
                return float(trend.count)
            if aggregation == "p":
                if percentile is None:
                    raise ValueError("the p aggregation needs a percentile")
                return trend.percentile(percentile)
            if aggregation in ("avg", "min", "max", "med"):
                return float(getattr(trend, aggregation))
        elif kind is MetricKind.RATE:
            if aggregation == "rate":
                return self.rate(name, tags)
        else:
            count = self.counter(name, tags)
            if aggregation == "count":
                return float(count)
            if aggregation == "rate":
                if not elapsed:
                    return None
                return count / elapsed
        raise ValueError(f"aggregation '{aggregation}' does not apply to {kind.value} metric {name}")

    def tag_values(self, name: str, key: str) -> List[str]:
        """List the distinct values a tag key takes across a metric's series."""
        values = set()
        for (series_name, series_tags), _ in self._series.items():
            if series_name != name:
                continue
            for tag, value in series_tags:
                if tag == key:
                    values.add(value)
        return sorted(values)

    def to_dict(self, elapsed: Optional[float] = None) -> Dict[str, Dict[str, Any]]:
        """
        Summarize every metric without tag selectors.

        Args:
            elapsed: Run duration in seconds, used for counter rates.
        """
        result: Dict[str, Dict[str, Any]] = {}
        for name in self.names():
            merged = self._merged(name)
            values = merged.summary(elapsed) if merged is not None else {}
            result[name] = {"type": self._kinds[name].value, "values": values}
        return result


class MetricAggregator:
    """
    Thread-safe metric sink shared by every virtual user.

    Example:
        aggregator = MetricAggregator()
        aggregator.record_count("iterations")
        aggregator.record_sample("http_req_duration", 12.5, tags={"operation": "DEPOSIT"})
        aggregator.record_boolean("checks", True, tags={"check": "status is 200"})
        snapshot = aggregator.snapshot()
    """

    def __init__(self, stripes: int = DEFAULT_STRIPES):
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self._stripes = [_Stripe() for _ in range(stripes)]
        self._assign = itertools.count()
        self._local = threading.local()
        self._kinds: Dict[str, MetricKind] = {}
        self._kinds_lock = threading.Lock()

    def _stripe(self) -> _Stripe:
        stripe = getattr(self._local, "stripe", None)
        if stripe is None:
            stripe = self._stripes[next(self._assign) % len(self._stripes)]
            self._local.stripe = stripe
        return stripe

    def declare(self, name: str, kind: MetricKind) -> None:
        """
        Bind a metric name to a kind without recording a sample.

        Raises:
            MetricTypeError: If the name is already bound to another kind.
        """
        existing = self._kinds.get(name)
        if existing is None:
            with self._kinds_lock:
                existing = self._kinds.setdefault(name, kind)
        if existing is not kind:
            raise MetricTypeError(
                f"Metric '{name}' is already a {existing.value}, cannot record it as a {kind.value}"
            )

    def _record(self, name: str, kind: MetricKind, tags: Optional[Mapping[str, str]], sample) -> None:
        self.declare(name, kind)
        key = (name, tag_key(tags))
        stripe = self._stripe()
        with stripe.lock:
            value = stripe.series.get(key)
            if value is None:
                value = stripe.series[key] = _FACTORIES[kind]()
            value.add(sample)

    def record_count(self, name: str, n=1, tags: Optional[Mapping[str, str]] = None) -> None:
        """Add n events to a counter."""
        if n < 0:
            raise ValueError(f"Counter '{name}' is monotonic; cannot add {n}")
        self._record(name, MetricKind.COUNTER, tags, n)

    def record_sample(self, name: str, value: float, tags: Optional[Mapping[str, str]] = None) -> None:
        """Add one numeric sample to a trend."""
        self._record(name, MetricKind.TREND, tags, value)

    def record_boolean(self, name: str, outcome: bool, tags: Optional[Mapping[str, str]] = None) -> None:
        """Add one boolean sample to a rate."""
        self._record(name, MetricKind.RATE, tags, bool(outcome))

    def snapshot(self) -> MetricsSnapshot:
        """
        Merge all stripes into a snapshot.

        Each stripe lock is held only while its series are copied.
        """
        merged: Dict[SeriesKey, Any] = {}
        for stripe in self._stripes:
            with stripe.lock:
                copies = [(key, value.copy()) for key, value in stripe.series.items()]
            for key, value in copies:
                existing = merged.get(key)
                if existing is None:
                    merged[key] = value
                else:
                    existing.merge(value)
        with self._kinds_lock:
            kinds = dict(self._kinds)
        return MetricsSnapshot(kinds, merged)
