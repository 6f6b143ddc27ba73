import unittest

from sagemaker_loadtest.collector import RequestResult, ResultsCollector
from sagemaker_loadtest.thresholds import Threshold, evaluate_thresholds, parse_thresholds


def collector_with(durations, failures=0):
    collector = ResultsCollector()
    for i, duration in enumerate(durations):
        collector.add_result(RequestResult(
            vu_id=0, iteration=i, start_time=0.0, status_code=200, duration_ms=duration,
        ))
    for i in range(failures):
        collector.add_result(RequestResult(
            vu_id=0, iteration=len(durations) + i, start_time=0.0, status_code=0,
            error_message="ReadTimeout",
        ))
    return collector


class TestThresholdParsing(unittest.TestCase):

    def test_percentile(self):
        threshold = Threshold.parse("http_req_duration", "p(95)<2000")
        self.assertEqual(threshold.aggregation, "p(95)")
        self.assertEqual(threshold.operator, "<")
        self.assertEqual(threshold.value, 2000.0)

    def test_rate(self):
        threshold = Threshold.parse("http_req_failed", "rate<0.01")
        self.assertEqual(threshold.aggregation, "rate")
        self.assertEqual(threshold.value, 0.01)

    def test_whitespace_and_operators(self):
        threshold = Threshold.parse("http_req_duration", " avg <= 150.5 ")
        self.assertEqual(threshold.aggregation, "avg")
        self.assertEqual(threshold.operator, "<=")
        self.assertEqual(threshold.value, 150.5)

    def test_exponent(self):
        self.assertEqual(Threshold.parse("http_req_failed", "rate<1e-05").value, 1e-05)

    def test_invalid(self):
        for expression in ("p95<2000", "rate", "avg<<1", "mean<10", "rate<abc"):
            with self.subTest(expression=expression):
                with self.assertRaises(ValueError):
                    Threshold.parse("http_req_duration", expression)

    def test_parse_thresholds(self):
        thresholds = parse_thresholds({
            "http_req_duration": ["p(95)<2000", "max<10000"],
            "http_req_failed": ["rate<0.01"],
        })
        self.assertEqual([t.expression for t in thresholds], ["p(95)<2000", "max<10000", "rate<0.01"])


class TestEvaluateThresholds(unittest.TestCase):

    def test_duration_passes(self):
        collector = collector_with([100.0] * 19 + [5000.0])
        [result] = evaluate_thresholds(collector, parse_thresholds({"http_req_duration": ["p(90)<2000"]}))
        self.assertTrue(result.passed)
        self.assertEqual(result.observed, 100.0)

    def test_duration_crossed(self):
        collector = collector_with([2500.0, 3000.0, 100.0])
        [result] = evaluate_thresholds(collector, parse_thresholds({"http_req_duration": ["p(95)<2000"]}))
        self.assertFalse(result.passed)

    def test_other_trend_aggregations(self):
        collector = collector_with([100.0, 200.0, 600.0])
        results = evaluate_thresholds(collector, parse_thresholds({
            "http_req_duration": ["avg==300", "med==200", "min>=100", "max<600", "count==3"],
        }))
        self.assertEqual([r.passed for r in results], [True, True, True, False, True])

    def test_failed_rate(self):
        collector = collector_with([100.0] * 99, failures=1)
        results = evaluate_thresholds(collector, parse_thresholds({
            "http_req_failed": ["rate<0.01", "rate<=0.01", "count==1"],
        }))
        self.assertEqual([r.passed for r in results], [False, True, True])
        self.assertEqual(results[0].observed, 0.01)

    def test_failed_requests_excluded_from_duration(self):
        collector = collector_with([100.0], failures=5)
        [result] = evaluate_thresholds(collector, parse_thresholds({"http_req_duration": ["max<200"]}))
        self.assertTrue(result.passed)

    def test_dropped_iterations(self):
        collector = collector_with([100.0])
        collector.add_dropped_iteration()
        [result] = evaluate_thresholds(collector, parse_thresholds({"dropped_iterations": ["count<1"]}))
        self.assertFalse(result.passed)

    def test_no_data(self):
        results = evaluate_thresholds(ResultsCollector(), parse_thresholds({
            "http_req_duration": ["p(95)<2000"],
            "http_req_failed": ["rate<0.01"],
        }))
        self.assertTrue(all(r.passed for r in results))

    def test_unsupported_metric(self):
        with self.assertRaises(ValueError):
            evaluate_thresholds(ResultsCollector(), parse_thresholds({"iterations": ["rate<1"]}))

    def test_to_dict(self):
        [result] = evaluate_thresholds(collector_with([1.0]), parse_thresholds({"http_req_duration": ["max<2"]}))
        self.assertEqual(result.to_dict(), {
            "metric": "http_req_duration",
            "expression": "max<2",
            "observed": 1.0,
            "passed": True,
        })


if __name__ == '__main__':
    unittest.main()
