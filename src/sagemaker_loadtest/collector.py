"""
Results Collector - Aggregates metrics from load test iterations.

Provides live statistics, percentile calculations, check tallies and report
generation.
"""

import json
import math
import statistics
import threading
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger()


@dataclass
class RequestResult:
    """Result of a single endpoint invocation."""

    # Identification
    vu_id: int
    iteration: int

    # Timing (wall clock seconds)
    start_time: float
    end_time: float = 0.0

    # Response
    status_code: int = 0                # 0 when no response was received
    duration_ms: Optional[float] = None  # request round trip, None without a response
    error_message: Optional[str] = None

    # Check name -> passed
    checks: Dict[str, bool] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        """True when no response arrived or the status is outside 200-399."""
        return not 200 <= self.status_code < 400

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def percentile(values: List[float], pct: float) -> float:
    """Percentile with linear interpolation between closest ranks."""
    if not values:
        return 0.0
    sorted_values = sorted(values)
    if len(sorted_values) == 1:
        return sorted_values[0]

    rank = (len(sorted_values) - 1) * pct / 100.0
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return sorted_values[lower]
    weight = rank - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


@dataclass
class AggregateStats:
    """Aggregated statistics for a metric."""
    count: int = 0
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    stddev: float = 0.0

    @classmethod
    def from_values(cls, values: List[float]) -> "AggregateStats":
        """Calculate statistics from a list of values."""
        if not values:
            return cls()

        return cls(
            count=len(values),
            min=min(values),
            max=max(values),
            mean=statistics.mean(values),
            median=statistics.median(values),
            p90=percentile(values, 90),
            p95=percentile(values, 95),
            p99=percentile(values, 99),
            stddev=statistics.stdev(values) if len(values) > 1 else 0.0,
        )


class ResultsCollector:
    """
    Thread-safe collector for load test results.

    Usage:
        collector = ResultsCollector()

        # Iterations submit results
        collector.add_result(result)

        # Get live stats
        stats = collector.get_live_stats()

        # Generate final report
        report = collector.generate_report()
    """

    def __init__(self):
        self._results: List[RequestResult] = []
        self._lock = threading.Lock()
        self._start_time: Optional[float] = None
        self._end_time: Optional[float] = None

        self._failed_count = 0
        self._dropped_iterations = 0
        self._interrupted_iterations = 0

    def start(self):
        """Mark the start of the load test."""
        self._start_time = time.time()

    def stop(self):
        """Mark the end of the load test."""
        self._end_time = time.time()

    def add_result(self, result: RequestResult):
        """Add a request result (thread-safe)."""
        with self._lock:
            self._results.append(result)
            if result.failed:
                self._failed_count += 1

    def add_dropped_iteration(self):
        with self._lock:
            self._dropped_iterations += 1

    def add_interrupted_iteration(self):
        with self._lock:
            self._interrupted_iterations += 1

    @property
    def results(self) -> List[RequestResult]:
        with self._lock:
            return self._results.copy()

    @property
    def dropped_iterations(self) -> int:
        return self._dropped_iterations

    @property
    def interrupted_iterations(self) -> int:
        return self._interrupted_iterations

    @property
    def elapsed(self) -> float:
        """Seconds between start() and stop(), or until now while running."""
        if self._start_time is None:
            return 0.0
        return (self._end_time or time.time()) - self._start_time

    def request_durations(self) -> List[float]:
        """Round-trip times in ms for every request that got a response."""
        with self._lock:
            return [r.duration_ms for r in self._results if r.duration_ms is not None]

    def failed_rate(self) -> float:
        with self._lock:
            total = len(self._results)
            return self._failed_count / total if total else 0.0

    def check_counts(self) -> Dict[str, Dict[str, int]]:
        """Pass/fail tallies per check name."""
        counts: Dict[str, Dict[str, int]] = defaultdict(lambda: {"passes": 0, "fails": 0})
        with self._lock:
            for r in self._results:
                for name, passed in r.checks.items():
                    counts[name]["passes" if passed else "fails"] += 1
        return dict(counts)

    def get_live_stats(self) -> Dict[str, Any]:
        """
        Get current statistics for live display.
        Returns lightweight stats without full aggregation.
        """
        with self._lock:
            total = len(self._results)
            recent = [
                r.duration_ms for r in self._results[-min(100, total):]
                if r.duration_ms is not None
            ]
            failed = self._failed_count
            dropped = self._dropped_iterations

        elapsed = self.elapsed
        return {
            "total_requests": total,
            "failed_count": failed,
            "success_rate": (total - failed) / total if total else 0.0,
            "dropped_iterations": dropped,
            "elapsed_seconds": elapsed,
            "requests_per_second": total / elapsed if elapsed > 0 else 0.0,
            "avg_duration_ms": statistics.mean(recent) if recent else 0.0,
        }

    def generate_report(self, config: Optional[Dict] = None, thresholds: Optional[List[Dict]] = None) -> Dict[str, Any]:
        """
        Generate the load test report.

        Args:
            config: Optional test configuration to include in report.
            thresholds: Optional evaluated thresholds to include in report.

        Returns:
            Complete report as dictionary.
        """
        results = self.results
        total_duration = self.elapsed
        failed = [r for r in results if r.failed]

        report: Dict[str, Any] = {
            "summary": {
                "timestamp": datetime.now().isoformat(),
                "total_duration_seconds": total_duration,
                "total_requests": len(results),
                "successful_requests": len(results) - len(failed),
                "failed_requests": len(failed),
                "success_rate": (len(results) - len(failed)) / len(results) if results else 0.0,
                "requests_per_second": len(results) / total_duration if total_duration > 0 else 0.0,
                "dropped_iterations": self._dropped_iterations,
                "interrupted_iterations": self._interrupted_iterations,
            },
            "latency": {},
            "checks": self.check_counts(),
            "errors": [],
        }

        durations = [r.duration_ms for r in results if r.duration_ms is not None]
        if durations:
            report["latency"]["http_req_duration_ms"] = asdict(AggregateStats.from_values(durations))

        if failed:
            error_messages: Dict[str, int] = defaultdict(int)
            for r in failed:
                msg = r.error_message or f"HTTP {r.status_code}"
                error_messages[msg] += 1

            report["errors"] = [
                {"message": msg, "count": count}
                for msg, count in sorted(error_messages.items(), key=lambda x: -x[1])
            ]

        if thresholds is not None:
            report["thresholds"] = thresholds
        if config:
            report["config"] = config

        return report

    def save_report(self, filepath: str, config: Optional[Dict] = None, thresholds: Optional[List[Dict]] = None):
        """Save report to JSON file."""
        report = self.generate_report(config, thresholds)

        with open(filepath, "w") as f:
            json.dump(report, f, indent=2)

        logger.info("Report saved", path=filepath)

    def save_raw_results(self, filepath: str):
        """Save raw results to JSON for detailed analysis."""
        data = [r.to_dict() for r in self.results]

        with open(filepath, "w") as f:
            json.dump(data, f, indent=2)

        logger.info("Raw results saved", path=filepath, count=len(data))

    def print_summary(self):
        """Print a human-readable summary to console."""
        report = self.generate_report()

        print("\n" + "=" * 60)
        print("LOAD TEST RESULTS")
        print("=" * 60)

        summary = report["summary"]
        print(f"\nDuration:        {summary['total_duration_seconds']:.2f}s")
        print(f"Total Requests:  {summary['total_requests']}")
        print(f"Successful:      {summary['successful_requests']}")
        print(f"Failed:          {summary['failed_requests']}")
        print(f"Success Rate:    {summary['success_rate'] * 100:.1f}%")
        print(f"Throughput:      {summary['requests_per_second']:.2f} req/s")
        print(f"Dropped:         {summary['dropped_iterations']}")

        latency = report["latency"].get("http_req_duration_ms")
        if latency:
            print("\nRequest Duration:")
            print(f"  P50:  {latency['median']:.0f}ms")
            print(f"  P95:  {latency['p95']:.0f}ms")
            print(f"  P99:  {latency['p99']:.0f}ms")
            print(f"  Max:  {latency['max']:.0f}ms")

        if report["checks"]:
            print("\nChecks:")
            for name, counts in report["checks"].items():
                total = counts["passes"] + counts["fails"]
                mark = "✓" if counts["fails"] == 0 else "✗"
                print(f"  {mark} {name}: {counts['passes']}/{total}")

        if report["errors"]:
            print("\nTop Errors:")
            for err in report["errors"][:5]:
                print(f"  [{err['count']}x] {err['message'][:50]}")

        print("\n" + "=" * 60)
