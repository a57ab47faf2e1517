"""
Check Evaluator - named boolean predicates over one iteration's result.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence

from loadgen_sdk.common.logger import get_logger
from loadgen_sdk.metrics import MetricAggregator

if TYPE_CHECKING:
    from loadgen_sdk.executor import IterationResult

logger = get_logger(__name__)

CHECKS_METRIC = "checks"

Predicate = Callable[["IterationResult"], bool]


@dataclass(frozen=True)
class Check:
    """A named predicate. Predicates must not mutate shared state."""
    name: str
    predicate: Predicate


class CheckSet:
    """
    Ordered set of checks evaluated without short-circuiting.

    Every check is evaluated and recorded for every result, so each check's
    pass rate is measurable on its own. A predicate that raises is recorded
    as a failure of that check only.
    """

    def __init__(self, checks: Iterable[Check] = ()):
        self._checks: List[Check] = list(checks)
        names = [c.name for c in self._checks]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate check names: {duplicates}")

    @classmethod
    def from_mapping(cls, predicates: Dict[str, Predicate]) -> "CheckSet":
        """Build a check set from a {name: predicate} mapping, keeping its order."""
        return cls(Check(name, fn) for name, fn in predicates.items())

    @property
    def names(self) -> List[str]:
        return [c.name for c in self._checks]

    def __len__(self) -> int:
        return len(self._checks)

    def evaluate(self, result: "IterationResult") -> Dict[str, bool]:
        outcomes: Dict[str, bool] = {}
        for check in self._checks:
            try:
                outcomes[check.name] = bool(check.predicate(result))
            except Exception as e:
                logger.debug(f"Check '{check.name}' raised {type(e).__name__}: {e}")
                outcomes[check.name] = False
        return outcomes

    def record(self, result: "IterationResult", aggregator: MetricAggregator) -> Dict[str, bool]:
        """
        Evaluate every check against a result and record each outcome.

        Returns:
            Mapping of check name to outcome.
        """
        outcomes = self.evaluate(result)
        for name, passed in outcomes.items():
            aggregator.record_boolean(CHECKS_METRIC, passed, tags={"check": name})
        return outcomes

    def succeeded(self, outcomes: Dict[str, bool], subset: Optional[Sequence[str]] = None) -> bool:
        """
        Combine outcomes into the iteration's success flag.

        Args:
            outcomes: Result of evaluate() or record().
            subset: Check names that must pass; None means all of them.
        """
        if subset is None:
            return all(outcomes.values())
        unknown = [n for n in subset if n not in outcomes]
        if unknown:
            raise KeyError(f"Unknown checks in success subset: {unknown}")
        return all(outcomes[n] for n in subset)
