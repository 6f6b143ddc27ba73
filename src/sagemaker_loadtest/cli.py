"""
SageMaker Endpoint Load Test CLI

Drives a constant-arrival-rate load test against a SageMaker endpoint with
SigV4-signed audio invocations. Run it on an EC2 instance whose IAM role may
call sagemaker:InvokeEndpoint; credentials come from the instance metadata
service.

Every option falls back to its environment variable (ENDPOINT_NAME, RATE,
DURATION, TARGET_FILE, ...).

Usage:
    # Environment driven
    ENDPOINT_NAME=my-endpoint RATE=10 DURATION=5m sagemaker-loadtest

    # Flags
    sagemaker-loadtest --endpoint-name my-endpoint --target-file 35sec_test.mp3 --rate 2

    # Predefined scenario, saving the report
    sagemaker-loadtest --endpoint-name my-endpoint --scenario heavy --output results.json

Exit codes:
    0   all thresholds passed
    1   configuration or setup error
    99  one or more thresholds crossed
    130 interrupted by SIGINT or SIGTERM (the report is still written)
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

import httpx
import structlog
from pydantic import ValidationError

from .audio_pool import AudioPool, create_test_audio
from .config import LoadTestConfig, TestScenario
from .exceptions import LoadTestError
from .metrics import MetricsServer
from .runner import LoadTestRunner

EXIT_THRESHOLDS_CROSSED = 99
EXIT_INTERRUPTED = 130


def setup_logging(verbose: bool = False, debug: bool = False, json_logs: bool = False, level: str = "INFO"):
    """Configure structlog on top of stdlib logging."""
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = logging.INFO
    else:
        log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=log_level, format="%(message)s", stream=sys.stderr)

    # Reduce noise from the HTTP stack
    for name in ("httpx", "httpcore", "botocore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="SageMaker Endpoint Load Testing Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Target configuration
    parser.add_argument("--endpoint-name", "-e", help="SageMaker endpoint name (env: ENDPOINT_NAME)")
    parser.add_argument("--region", help="AWS region (env: AWS_REGION, default: us-east-1)")
    parser.add_argument(
        "--sensitivity",
        help="Optional default_sensitivity custom attribute, -2 to 2 (env: SENSITIVITY)",
    )

    # Payload configuration
    parser.add_argument("--dataset-dir", "-a", help="Directory holding payload files (env: DATASET_DIR, default: dataset)")
    parser.add_argument("--target-file", "-f", help="Payload file to send (env: TARGET_FILE, default: 10sec_test.mp3)")
    parser.add_argument("--content-type", help="Request Content-Type (env: CONTENT_TYPE, default: from extension)")

    # Load configuration
    parser.add_argument(
        "--scenario", "-s",
        choices=[s.value for s in TestScenario],
        help="Use a predefined arrival-rate scenario",
    )
    parser.add_argument("--rate", "-r", type=int, help="Iterations per time unit (env: RATE, default: 5)")
    parser.add_argument("--time-unit", help="Rate period, e.g. 1s or 1m (env: TIME_UNIT, default: 1s)")
    parser.add_argument("--duration", "-d", help="Arrival phase length, e.g. 1m (env: DURATION, default: 1m)")
    parser.add_argument("--max-vus", type=int, help="Maximum virtual users (env: MAX_VUS, default: 20)")
    parser.add_argument("--pre-allocated-vus", type=int, help="Virtual users created up front (default: 1)")
    parser.add_argument("--graceful-stop", help="Time in-flight iterations get to finish (default: 30s)")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds (default: 180)")

    # Thresholds
    parser.add_argument(
        "--threshold-duration",
        type=int,
        help="p95 request duration threshold in ms (env: THRESHOLD_DURATION, default: 2000)",
    )

    # Output configuration
    parser.add_argument("--output", "-o", help="Output file for JSON report")
    parser.add_argument("--output-raw", help="Output file for raw results (JSON)")
    parser.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")

    # Verbosity
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")

    # Utilities
    parser.add_argument(
        "--create-test-audio",
        action="store_true",
        help="Create a raw f32le silence payload in the dataset dir",
    )
    parser.add_argument("--list-audio", action="store_true", help="List available payload files and exit")

    return parser.parse_args(argv)


_OVERRIDES = {
    "endpoint_name": "endpoint_name",
    "region": "aws_region",
    "sensitivity": "sensitivity",
    "dataset_dir": "dataset_dir",
    "target_file": "target_file",
    "content_type": "content_type",
    "rate": "rate",
    "time_unit": "time_unit",
    "duration": "duration",
    "max_vus": "max_vus",
    "pre_allocated_vus": "pre_allocated_vus",
    "graceful_stop": "graceful_stop",
    "timeout": "request_timeout",
    "threshold_duration": "threshold_duration",
    "output": "output_file",
    "metrics_port": "metrics_port",
}


def create_config_from_args(args: argparse.Namespace) -> LoadTestConfig:
    """
    Build the config: flags override the scenario, which overrides the environment.

    Raises:
        pydantic.ValidationError: If the resulting settings are invalid.
    """
    overrides = {
        field: getattr(args, arg)
        for arg, field in _OVERRIDES.items()
        if getattr(args, arg) is not None
    }

    if args.scenario:
        return LoadTestConfig.from_scenario(TestScenario(args.scenario), **overrides)
    return LoadTestConfig(**overrides)


async def run(args: argparse.Namespace) -> int:
    """Run the load test described by the parsed arguments."""
    logger = structlog.get_logger()

    try:
        config = create_config_from_args(args)
    except ValidationError as e:
        print(f"Error: invalid configuration\n{e}", file=sys.stderr)
        return 1

    try:
        MetricsServer(config.metrics_port).start()
        runner = LoadTestRunner(config)
        collector = await runner.run()
    except (LoadTestError, OSError, ValueError, httpx.HTTPError) as e:
        logger.error("Load test aborted", error=str(e), error_type=type(e).__name__)
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1

    thresholds = runner.check_thresholds()

    if config.output_file:
        collector.save_report(config.output_file, config.to_dict(), [t.to_dict() for t in thresholds])
        print(f"\nReport saved to: {config.output_file}")

    if args.output_raw:
        collector.save_raw_results(args.output_raw)
        print(f"Raw results saved to: {args.output_raw}")

    crossed = [t for t in thresholds if not t.passed]
    for t in thresholds:
        mark = "✓" if t.passed else "✗"
        print(f"{mark} {t.metric}: {t.expression} (observed {t.observed:.4f})")

    if runner.interrupted:
        print("\nInterrupted by user")
        return EXIT_INTERRUPTED

    if crossed:
        print(f"\nWarning: {len(crossed)} threshold(s) crossed")
        return EXIT_THRESHOLDS_CROSSED
    return 0


def list_audio(dataset_dir: str) -> int:
    try:
        pool = AudioPool(dataset_dir)
        pool.load()
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    summary = pool.summary()
    print(f"\nPayload files in {dataset_dir}:")
    print("-" * 40)
    for name in summary["files"]:
        print(f"  {name}")
    print("-" * 40)
    print(f"Total: {summary['count']} files, {summary['total_bytes']} bytes")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose, args.debug, args.json_logs, os.getenv("LOG_LEVEL", "INFO"))

    dataset_dir = args.dataset_dir or os.getenv("DATASET_DIR", "dataset")

    # Handle utility commands
    if args.create_test_audio:
        filepath = create_test_audio(dataset_dir, duration=3.0)
        print(f"Created: {filepath}")
        return 0

    if args.list_audio:
        return list_audio(dataset_dir)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
