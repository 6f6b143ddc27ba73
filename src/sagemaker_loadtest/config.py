"""
Load Test Configuration

Settings are read from environment variables (TARGET_FILE, RATE, DURATION,
ENDPOINT_NAME, ...) and can be overridden from the command line or by one of
the pre-built scenarios.
"""

import math
import re
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """
    Parse a duration string such as "1s", "500ms" or "1m30s" into seconds.

    A bare number is taken as seconds.

    Raises:
        ValueError: If the string is not a valid non-negative duration.
    """
    text = str(value).strip()
    if not text:
        raise ValueError("Empty duration")

    try:
        seconds = float(text)
    except ValueError:
        seconds = None

    if seconds is None:
        seconds = 0.0
        pos = 0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos == 0 or pos != len(text):
            raise ValueError(f"Invalid duration: {text!r}")

    if not math.isfinite(seconds) or seconds < 0:
        raise ValueError(f"Invalid duration: {text!r}")
    return seconds


class TestScenario(Enum):
    """Pre-defined arrival-rate scenarios."""
    BASELINE = "baseline"       # 1 req/s, establish latency baseline
    LIGHT = "light"             # 2 req/s, normal operation
    MEDIUM = "medium"           # 5 req/s, typical peak
    HEAVY = "heavy"             # 20 req/s, stress test
    SPIKE = "spike"             # 50 req/s burst
    ENDURANCE = "endurance"     # 5 req/s for 30 minutes

    __test__ = False


_SCENARIOS: Dict[TestScenario, Dict[str, Any]] = {
    TestScenario.BASELINE: {"rate": 1, "duration": "30s", "max_vus": 2},
    TestScenario.LIGHT: {"rate": 2, "duration": "2m", "max_vus": 10},
    TestScenario.MEDIUM: {"rate": 5, "duration": "5m", "max_vus": 20},
    TestScenario.HEAVY: {"rate": 20, "duration": "5m", "max_vus": 60},
    TestScenario.SPIKE: {"rate": 50, "duration": "30s", "max_vus": 100},
    TestScenario.ENDURANCE: {"rate": 5, "duration": "30m", "max_vus": 20},
}


class LoadTestConfig(BaseSettings):
    """Configuration for a load test run, loaded from environment variables."""

    # Payload
    target_file: str = "10sec_test.mp3"
    content_type: Optional[str] = None
    dataset_dir: str = "dataset"

    # Arrival rate
    rate: int = 5
    time_unit: str = "1s"
    duration: str = "1m"
    pre_allocated_vus: int = 1
    max_vus: int = 20
    graceful_stop: str = "30s"

    # Thresholds
    threshold_duration: int = 2000      # ms
    failed_rate_threshold: float = 0.01

    # SageMaker endpoint
    aws_region: str = "us-east-1"
    endpoint_name: Optional[str] = None
    sensitivity: Optional[str] = None   # -2 to 2
    request_timeout: float = 180.0
    iteration_sleep: float = 0.5

    # Instance metadata service
    imds_url: str = "http://169.254.169.254"
    imds_token_ttl: int = 300
    imds_timeout: float = 5.0

    # Output
    output_file: Optional[str] = None
    metrics_port: Optional[int] = None
    live_stats_interval: float = 5.0

    class Config:
        case_sensitive = False

    @field_validator("content_type", "endpoint_name", "sensitivity", "output_file", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("time_unit", "duration", "graceful_stop")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @field_validator("sensitivity")
    @classmethod
    def _check_sensitivity(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        try:
            level = float(value)
        except ValueError:
            raise ValueError(f"SENSITIVITY must be a number between -2 and 2, got {value!r}")
        if not -2 <= level <= 2:
            raise ValueError(f"SENSITIVITY must be between -2 and 2, got {value}")
        return value

    @model_validator(mode="after")
    def _check_load_settings(self) -> "LoadTestConfig":
        if not self.endpoint_name:
            raise ValueError("ENDPOINT_NAME environment variable is required")
        if self.rate <= 0:
            raise ValueError("RATE must be positive")
        if self.time_unit_seconds <= 0:
            raise ValueError("TIME_UNIT must be longer than zero")
        if self.max_vus < 1:
            raise ValueError("MAX_VUS must be at least 1")
        if self.pre_allocated_vus < 1:
            raise ValueError("PRE_ALLOCATED_VUS must be at least 1")
        if self.pre_allocated_vus > self.max_vus:
            self.pre_allocated_vus = self.max_vus
        return self

    @classmethod
    def from_scenario(cls, scenario: TestScenario, **overrides) -> "LoadTestConfig":
        """Create config from a predefined scenario."""
        config_dict = dict(_SCENARIOS.get(scenario, {}))
        config_dict.update(overrides)
        return cls(**config_dict)

    @property
    def time_unit_seconds(self) -> float:
        return parse_duration(self.time_unit)

    @property
    def duration_seconds(self) -> float:
        return parse_duration(self.duration)

    @property
    def graceful_stop_seconds(self) -> float:
        return parse_duration(self.graceful_stop)

    @property
    def iteration_interval(self) -> float:
        """Seconds between iteration starts."""
        return self.time_unit_seconds / self.rate

    @property
    def thresholds(self) -> Dict[str, list]:
        """Pass/fail criteria applied to the run."""
        return {
            "http_req_duration": [f"p(95)<{self.threshold_duration}"],
            "http_req_failed": [f"rate<{self.failed_rate_threshold}"],
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for the report."""
        return {
            "target_file": self.target_file,
            "content_type": self.content_type,
            "endpoint_name": self.endpoint_name,
            "aws_region": self.aws_region,
            "sensitivity": self.sensitivity,
            "rate": self.rate,
            "time_unit": self.time_unit,
            "duration": self.duration,
            "pre_allocated_vus": self.pre_allocated_vus,
            "max_vus": self.max_vus,
            "graceful_stop": self.graceful_stop,
            "request_timeout": self.request_timeout,
            "thresholds": self.thresholds,
        }
