import json
import tempfile
import unittest
from pathlib import Path

from sagemaker_loadtest.collector import AggregateStats, RequestResult, ResultsCollector, percentile


def make_result(status_code=200, duration_ms=100.0, error=None, checks=None, iteration=0):
    return RequestResult(
        vu_id=0,
        iteration=iteration,
        start_time=1000.0,
        end_time=1000.0 + (duration_ms or 0) / 1000,
        status_code=status_code,
        duration_ms=duration_ms,
        error_message=error,
        checks=checks or {},
    )


class TestPercentile(unittest.TestCase):

    def test_interpolates(self):
        self.assertEqual(percentile([1, 2, 3, 4], 50), 2.5)
        self.assertEqual(percentile([4, 3, 2, 1], 0), 1)
        self.assertEqual(percentile([1, 2, 3, 4], 100), 4)
        self.assertAlmostEqual(percentile(list(range(1, 101)), 95), 95.05)

    def test_edge_cases(self):
        self.assertEqual(percentile([], 95), 0.0)
        self.assertEqual(percentile([7.0], 99), 7.0)

    def test_aggregate_stats(self):
        stats = AggregateStats.from_values([100.0, 200.0, 300.0])
        self.assertEqual(stats.count, 3)
        self.assertEqual(stats.min, 100.0)
        self.assertEqual(stats.max, 300.0)
        self.assertEqual(stats.mean, 200.0)
        self.assertEqual(stats.median, 200.0)
        self.assertEqual(stats.stddev, 100.0)
        self.assertEqual(AggregateStats.from_values([]).count, 0)


class TestRequestResult(unittest.TestCase):

    def test_failed(self):
        self.assertFalse(make_result(200).failed)
        self.assertFalse(make_result(302).failed)
        self.assertTrue(make_result(400).failed)
        self.assertTrue(make_result(503).failed)
        self.assertTrue(make_result(0, duration_ms=None).failed)


class TestResultsCollector(unittest.TestCase):

    def setUp(self):
        self.collector = ResultsCollector()
        self.collector.start()

    def test_counts(self):
        self.collector.add_result(make_result(200, 100.0))
        self.collector.add_result(make_result(200, 300.0))
        self.collector.add_result(make_result(500, 50.0, error="ModelError"))
        self.collector.add_result(make_result(0, None, error="ConnectError: refused"))
        self.collector.add_dropped_iteration()
        self.collector.add_interrupted_iteration()

        self.assertEqual(self.collector.request_durations(), [100.0, 300.0, 50.0])
        self.assertEqual(self.collector.failed_rate(), 0.5)
        self.assertEqual(self.collector.dropped_iterations, 1)
        self.assertEqual(self.collector.interrupted_iterations, 1)

        stats = self.collector.get_live_stats()
        self.assertEqual(stats["total_requests"], 4)
        self.assertEqual(stats["failed_count"], 2)
        self.assertEqual(stats["success_rate"], 0.5)
        self.assertEqual(stats["dropped_iterations"], 1)

    def test_check_counts(self):
        self.collector.add_result(make_result(checks={"status is 200": True, "response time < 2000ms": True}))
        self.collector.add_result(make_result(checks={"status is 200": True, "response time < 2000ms": False}))

        self.assertEqual(self.collector.check_counts(), {
            "status is 200": {"passes": 2, "fails": 0},
            "response time < 2000ms": {"passes": 1, "fails": 1},
        })

    def test_empty_failed_rate(self):
        self.assertEqual(self.collector.failed_rate(), 0.0)
        self.assertEqual(self.collector.get_live_stats()["total_requests"], 0)

    def test_generate_report(self):
        self.collector.add_result(make_result(200, 100.0))
        self.collector.add_result(make_result(500, 80.0, error="ModelError"))
        self.collector.add_result(make_result(500, 90.0, error="ModelError"))
        self.collector.add_result(make_result(429, 20.0))
        self.collector.stop()

        report = self.collector.generate_report(config={"rate": 5}, thresholds=[{"metric": "x"}])

        summary = report["summary"]
        self.assertEqual(summary["total_requests"], 4)
        self.assertEqual(summary["successful_requests"], 1)
        self.assertEqual(summary["failed_requests"], 3)
        self.assertEqual(report["latency"]["http_req_duration_ms"]["count"], 4)
        self.assertEqual(report["errors"], [
            {"message": "ModelError", "count": 2},
            {"message": "HTTP 429", "count": 1},
        ])
        self.assertEqual(report["config"], {"rate": 5})
        self.assertEqual(report["thresholds"], [{"metric": "x"}])

    def test_save_report_and_raw_results(self):
        self.collector.add_result(make_result(200, 100.0))
        self.collector.stop()

        with tempfile.TemporaryDirectory() as tmp:
            report_path = Path(tmp) / "report.json"
            raw_path = Path(tmp) / "raw.json"
            self.collector.save_report(str(report_path))
            self.collector.save_raw_results(str(raw_path))

            report = json.loads(report_path.read_text())
            raw = json.loads(raw_path.read_text())

        self.assertEqual(report["summary"]["total_requests"], 1)
        self.assertEqual(raw[0]["status_code"], 200)
        self.assertEqual(raw[0]["duration_ms"], 100.0)


if __name__ == '__main__':
    unittest.main()
