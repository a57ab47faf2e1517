"""
Ramp Scheduler - keeps the live VU count on the profile's target curve.

A load profile is a pure function T(t) from elapsed seconds to a target VU
count (None once the profile has ended). The scheduler re-samples it on every
control tick and starts or retires VUs to match. Retiring a VU only signals it
to stop after its current iteration; nothing is cancelled mid-flight.
"""

import math
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Tuple

from loadgen_sdk.common.logger import get_logger
from loadgen_sdk.common.telemetry import record_vus
from loadgen_sdk.metrics import MetricAggregator

logger = get_logger(__name__)

VUS_METRIC = "vus"

# Guards interpolated values like 9.999999 against flooring to 9
_EPSILON = 1e-9
# Shortest sleep between ticks while following a steep ramp-down
_MIN_WAKE = 0.005


class LoadProfile(ABC):
    """Target concurrency as a function of elapsed time."""

    @property
    @abstractmethod
    def total_duration(self) -> float:
        """Seconds until the profile ends."""

    @abstractmethod
    def target_at(self, elapsed: float) -> Optional[int]:
        """Target VU count at elapsed seconds, or None once the profile has ended."""

    @abstractmethod
    def next_wakeup(self, elapsed: float) -> Optional[float]:
        """Seconds until the target may next decrease, or None once ended."""


class FixedProfile(LoadProfile):
    """Constant VU count for a fixed duration."""

    def __init__(self, vus: int, duration: float):
        if vus < 0 or duration < 0:
            raise ValueError("vus and duration must be non-negative")
        self.vus = int(vus)
        self.duration = float(duration)

    @property
    def total_duration(self) -> float:
        return self.duration

    def target_at(self, elapsed: float) -> Optional[int]:
        if elapsed >= self.duration:
            return None
        return self.vus

    def next_wakeup(self, elapsed: float) -> Optional[float]:
        if elapsed >= self.duration:
            return None
        return self.duration - max(0.0, elapsed)

    def __repr__(self) -> str:
        return f"FixedProfile(vus={self.vus}, duration={self.duration})"


class StagedProfile(LoadProfile):
    """
    Linear ramps between stage targets.

    Stage i interpolates from the previous stage's target (0 for the first
    stage) to its own target over its duration. A zero-length stage is a
    jump. Interpolated values are floored.
    """

    def __init__(self, stages: Sequence[Tuple[float, int]]):
        if not stages:
            raise ValueError("a staged profile needs at least one stage")
        normalized = []
        for duration, target in stages:
            if duration < 0 or target < 0:
                raise ValueError(f"invalid stage ({duration}, {target})")
            normalized.append((float(duration), int(target)))
        self.stages: Tuple[Tuple[float, int], ...] = tuple(normalized)
        self._total = sum(d for d, _ in self.stages)

    @property
    def total_duration(self) -> float:
        return self._total

    def _locate(self, elapsed: float):
        start = 0.0
        previous = 0
        for duration, target in self.stages:
            end = start + duration
            if elapsed < end:
                return start, duration, previous, target
            start = end
            previous = target
        return None

    def target_at(self, elapsed: float) -> Optional[int]:
        stage = self._locate(max(0.0, elapsed))
        if stage is None:
            return None
        start, duration, previous, target = stage
        fraction = (max(0.0, elapsed) - start) / duration
        return math.floor(previous + (target - previous) * fraction + _EPSILON)

    def next_wakeup(self, elapsed: float) -> Optional[float]:
        elapsed = max(0.0, elapsed)
        stage = self._locate(elapsed)
        if stage is None:
            return None
        start, duration, previous, target = stage
        until_end = start + duration - elapsed
        if target < previous:
            # One VU's worth of decrease per wakeup
            return min(until_end, duration / (previous - target))
        return until_end

    def __repr__(self) -> str:
        return f"StagedProfile(stages={list(self.stages)})"


class RampScheduler:
    """
    Starts and retires virtual users to follow a load profile.

    The scheduler loop runs on the caller's thread. Each VU is created by
    vu_factory(vu_id) and must provide start(), stop(), join(timeout),
    is_alive() and a stopping property.

    Example:
        scheduler = RampScheduler(StagedProfile([(10, 100), (10, 0)]), make_vu)
        elapsed = scheduler.run(stop_event)
    """

    def __init__(
        self,
        profile: LoadProfile,
        vu_factory: Callable[[int], object],
        control_interval: float = 1.0,
        graceful_stop: float = 30.0,
        aggregator: Optional[MetricAggregator] = None,
        on_tick: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if control_interval <= 0:
            raise ValueError("control_interval must be positive")
        self.profile = profile
        self._vu_factory = vu_factory
        self._control_interval = control_interval
        self._graceful_stop = graceful_stop
        self._aggregator = aggregator
        self._on_tick = on_tick
        self._clock = clock

        self._vus: List[object] = []
        self._lock = threading.Lock()
        self._next_id = 1
        self._draining = False

        self.vus_max = 0
        self.started_total = 0
        self.timeline: List[Tuple[float, int, int]] = []
        self._last_vus_sample: Optional[float] = None

    @property
    def live_count(self) -> int:
        """VUs still running, including ones draining their last iteration."""
        with self._lock:
            return sum(1 for vu in self._vus if vu.is_alive())

    @property
    def active_count(self) -> int:
        """VUs running and not yet asked to stop."""
        with self._lock:
            return sum(1 for vu in self._vus if vu.is_alive() and not vu.stopping)

    def reconcile(self, target: int) -> int:
        """
        Start or retire VUs so the active count equals target.

        Returns:
            Active VU count after reconciliation.
        """
        with self._lock:
            if self._draining:
                return 0
            self._vus = [vu for vu in self._vus if vu.is_alive()]
            active = [vu for vu in self._vus if not vu.stopping]

            if len(active) < target:
                missing = target - len(active)
                for _ in range(missing):
                    vu = self._vu_factory(self._next_id)
                    self._next_id += 1
                    vu.start()
                    self._vus.append(vu)
                    active.append(vu)
                self.started_total += missing
            elif len(active) > target:
                for vu in active[target:]:
                    vu.stop()
                active = active[:target]

            count = len(active)
            self.vus_max = max(self.vus_max, count)
            return count

    def follow(self, stop_event: threading.Event) -> float:
        """
        Follow the profile until it ends or stop_event is set.

        VUs are left running; call drain() afterwards.

        Returns:
            Elapsed seconds from start until the loop exited.
        """
        start = self._clock()
        logger.info(f"Scheduler started: {self.profile!r}, control_interval={self._control_interval}s")
        while not stop_event.is_set():
            elapsed = self._clock() - start
            target = self.profile.target_at(elapsed)
            if target is None:
                break
            active = self.reconcile(target)
            self._sample(elapsed, target, active)
            if self._on_tick is not None:
                self._on_tick(elapsed)

            wakeup = self.profile.next_wakeup(self._clock() - start)
            if wakeup is None:
                continue
            stop_event.wait(max(_MIN_WAKE, min(self._control_interval, wakeup)))
        elapsed = self._clock() - start
        logger.info(
            f"Scheduler loop ended after {elapsed:.1f}s "
            f"(vus_max={self.vus_max}, started={self.started_total})"
        )
        return elapsed

    def run(self, stop_event: threading.Event) -> float:
        """Follow the profile, then drain every VU."""
        try:
            return self.follow(stop_event)
        finally:
            self.drain()

    def drain(self) -> None:
        """Stop every VU after its current iteration and wait up to graceful_stop."""
        with self._lock:
            self._draining = True
            vus = list(self._vus)

        for vu in vus:
            vu.stop()
        if vus:
            logger.info(f"Draining {len(vus)} VUs (graceful_stop={self._graceful_stop}s)")

        deadline = self._clock() + self._graceful_stop
        for vu in vus:
            vu.join(max(0.0, deadline - self._clock()))

        stuck = [vu for vu in vus if vu.is_alive()]
        if stuck:
            logger.warning(
                f"{len(stuck)} VUs still busy after graceful_stop={self._graceful_stop}s; abandoning them"
            )
        with self._lock:
            self._vus = stuck

    def _sample(self, elapsed: float, target: int, active: int) -> None:
        self.timeline.append((elapsed, target, active))
        # At most one vus sample per control_interval, even on fast ramp-down ticks
        if self._last_vus_sample is not None and elapsed - self._last_vus_sample < self._control_interval:
            return
        self._last_vus_sample = elapsed
        if self._aggregator is not None:
            self._aggregator.record_sample(VUS_METRIC, active)
        record_vus(active)
