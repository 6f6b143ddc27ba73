"""
SageMaker Endpoint Load Testing
===============================

Constant-arrival-rate load testing for SageMaker audio inference endpoints,
with SigV4-signed invocations and credentials from the EC2 instance metadata
service.

Architecture:
    ┌─────────────────────────────────────────────────────┐
    │              LoadTestRunner                          │
    │   setup(): IMDSv2 -> Credentials                     │
    │  ┌─────┐ ┌─────┐ ┌─────┐                             │
    │  │VU 0 │ │VU 1 │ │VU N │  (asyncio, up to MAX_VUS)   │
    │  └──┬──┘ └──┬──┘ └──┬──┘                             │
    │     └───────┼───────┘                                │
    │      EndpointWorker ── AudioPool (TARGET_FILE)       │
    │             │ RequestSigner (SigV4)                  │
    └─────────────┼───────────────────────────────────────┘
                  ▼ HTTPS POST /endpoints/<name>/invocations
    ┌─────────────────────────────────────────────────────┐
    │          SageMaker runtime endpoint                  │
    └─────────────────────────────────────────────────────┘

Usage:
    # CLI (recommended)
    ENDPOINT_NAME=my-endpoint sagemaker-loadtest --rate 5 --duration 1m

    # Programmatic
    from sagemaker_loadtest import LoadTestConfig, LoadTestRunner

    config = LoadTestConfig(endpoint_name="my-endpoint")
    runner = LoadTestRunner(config)
    collector = await runner.run()
    thresholds = runner.check_thresholds()

Requirements:
    - Payload files in the dataset directory (10sec_test.mp3 by default)
    - An EC2 instance role allowed to call sagemaker:InvokeEndpoint
"""

from .config import LoadTestConfig, TestScenario, parse_duration
from .audio_pool import AudioPool, AudioFile, create_test_audio, default_content_type
from .collector import ResultsCollector, RequestResult, AggregateStats
from .credentials import Credentials, fetch_credentials
from .exceptions import LoadTestError, CredentialsError, PayloadNotFoundError
from .signer import RequestSigner, SignedRequest
from .thresholds import Threshold, ThresholdResult, evaluate_thresholds
from .worker import EndpointWorker, WorkerConfig
from .runner import LoadTestRunner

__version__ = "1.0.0"

__all__ = [
    # Config
    "LoadTestConfig",
    "TestScenario",
    "parse_duration",
    # Audio
    "AudioPool",
    "AudioFile",
    "create_test_audio",
    "default_content_type",
    # Collector
    "ResultsCollector",
    "RequestResult",
    "AggregateStats",
    # Credentials & signing
    "Credentials",
    "fetch_credentials",
    "RequestSigner",
    "SignedRequest",
    # Errors
    "LoadTestError",
    "CredentialsError",
    "PayloadNotFoundError",
    # Thresholds
    "Threshold",
    "ThresholdResult",
    "evaluate_thresholds",
    # Worker
    "EndpointWorker",
    "WorkerConfig",
    # Runner
    "LoadTestRunner",
]
