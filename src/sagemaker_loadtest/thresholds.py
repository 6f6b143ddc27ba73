"""
Threshold evaluation.

Expressions follow the k6 form ``<aggregation><operator><value>``, e.g.
``p(95)<2000`` on ``http_req_duration`` or ``rate<0.01`` on
``http_req_failed``.
"""

import operator
import re
import statistics
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Sequence

from .collector import ResultsCollector, percentile

_EXPRESSION = re.compile(
    r"^\s*(?P<agg>p\(\s*\d+(?:\.\d+)?\s*\)|avg|min|max|med|rate|count)"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*(?P<value>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*$"
)

_OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


@dataclass
class Threshold:
    metric: str
    expression: str
    aggregation: str
    operator: str
    value: float

    @classmethod
    def parse(cls, metric: str, expression: str) -> "Threshold":
        match = _EXPRESSION.match(expression)
        if not match:
            raise ValueError(f"Invalid threshold for {metric}: {expression!r}")
        return cls(
            metric=metric,
            expression=expression,
            aggregation=match.group("agg").replace(" ", ""),
            operator=match.group("op"),
            value=float(match.group("value")),
        )


@dataclass
class ThresholdResult:
    metric: str
    expression: str
    observed: float
    passed: bool

    def to_dict(self) -> Dict:
        return asdict(self)


def parse_thresholds(definitions: Dict[str, Sequence[str]]) -> List[Threshold]:
    return [
        Threshold.parse(metric, expression)
        for metric, expressions in definitions.items()
        for expression in expressions
    ]


def _aggregate(values: List[float], aggregation: str) -> float:
    if aggregation == "count":
        return float(len(values))
    if not values:
        return 0.0
    if aggregation.startswith("p("):
        return percentile(values, float(aggregation[2:-1]))
    if aggregation == "avg":
        return statistics.mean(values)
    if aggregation == "med":
        return statistics.median(values)
    if aggregation == "min":
        return min(values)
    if aggregation == "max":
        return max(values)
    raise ValueError(f"Aggregation {aggregation} does not apply to trend metrics")


def observe(collector: ResultsCollector, threshold: Threshold) -> float:
    """Current value of the threshold's aggregation for its metric."""
    if threshold.metric == "http_req_duration":
        return _aggregate(collector.request_durations(), threshold.aggregation)

    if threshold.metric == "http_req_failed":
        if threshold.aggregation == "rate":
            return collector.failed_rate()
        if threshold.aggregation == "count":
            return float(sum(1 for r in collector.results if r.failed))

    if threshold.metric == "dropped_iterations" and threshold.aggregation == "count":
        return float(collector.dropped_iterations)

    raise ValueError(f"Unsupported threshold {threshold.metric}: {threshold.expression}")


def evaluate_thresholds(collector: ResultsCollector, thresholds: List[Threshold]) -> List[ThresholdResult]:
    results = []
    for threshold in thresholds:
        observed = observe(collector, threshold)
        results.append(ThresholdResult(
            metric=threshold.metric,
            expression=threshold.expression,
            observed=observed,
            passed=_OPERATORS[threshold.operator](observed, threshold.value),
        ))
    return results
