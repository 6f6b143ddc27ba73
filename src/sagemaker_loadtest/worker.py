"""
Endpoint Worker - Runs one load test iteration against the SageMaker endpoint.

Each iteration:
1. Builds the invocation headers
2. Signs the POST with the setup credentials
3. Sends the payload and times the round trip
4. Records checks and the result with the collector
5. Sleeps before handing the VU back to the pool
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import structlog

from .audio_pool import AudioFile
from .collector import RequestResult
from .credentials import Credentials
from .metrics import LoadTestMetrics
from .signer import RequestSigner, build_headers, endpoint_url, invocation_path

logger = structlog.get_logger()

STATUS_CHECK = "status is 200"


@dataclass
class WorkerConfig:
    """Per-iteration settings shared by every VU."""
    endpoint_name: str
    region: str
    content_type: str
    sensitivity: Optional[str] = None
    threshold_duration_ms: int = 2000
    request_timeout: float = 180.0
    iteration_sleep: float = 0.5

    @property
    def url(self) -> str:
        return endpoint_url(self.region) + invocation_path(self.endpoint_name)

    @property
    def duration_check(self) -> str:
        return f"response time < {self.threshold_duration_ms}ms"


class EndpointWorker:
    """
    Invokes the endpoint on behalf of whichever VU the runner hands it.

    Usage:
        worker = EndpointWorker(config, payload, client, collector.add_result)
        await worker.run_iteration(credentials, vu_id=0, iteration=0)
    """

    def __init__(
        self,
        config: WorkerConfig,
        payload: AudioFile,
        client: httpx.AsyncClient,
        on_result: Callable[[RequestResult], None],
        metrics: Optional[LoadTestMetrics] = None,
    ):
        self.config = config
        self.payload = payload
        self.client = client
        self.on_result = on_result
        self.metrics = metrics

    async def run_iteration(self, credentials: Optional[Credentials], vu_id: int, iteration: int):
        """Sign and send one invocation, then think for iteration_sleep seconds."""
        if credentials is None or not credentials.access_key_id:
            logger.error("Credentials not available", credentials=repr(credentials), vu=vu_id)
            return

        result = await self._invoke(credentials, vu_id, iteration)
        self.on_result(result)
        self._observe(result)

        if result.status_code != 200:
            if result.status_code:
                logger.error(
                    f"Request failed: {result.status_code} - {result.error_message}",
                    vu=vu_id,
                    iteration=iteration,
                )
            else:
                logger.error("Request failed", error=result.error_message, vu=vu_id, iteration=iteration)

        if self.config.iteration_sleep > 0:
            await asyncio.sleep(self.config.iteration_sleep)

    async def _invoke(self, credentials: Credentials, vu_id: int, iteration: int) -> RequestResult:
        signer = RequestSigner(credentials, self.config.region)
        headers = build_headers(self.config.content_type, self.config.sensitivity)
        signed = signer.sign("POST", self.config.url, headers, self.payload.data)

        result = RequestResult(vu_id=vu_id, iteration=iteration, start_time=time.time())
        started = time.perf_counter()

        try:
            response = await self.client.post(
                signed.url,
                content=self.payload.data,
                headers=signed.headers,
                timeout=self.config.request_timeout,
            )
            result.duration_ms = (time.perf_counter() - started) * 1000
            result.status_code = response.status_code
            if response.status_code != 200:
                result.error_message = response.text

        except httpx.TimeoutException as e:
            result.error_message = f"Request timed out after {self.config.request_timeout}s: {e!r}"

        except httpx.HTTPError as e:
            result.error_message = f"{type(e).__name__}: {e}"

        result.end_time = time.time()
        result.checks = {
            STATUS_CHECK: result.status_code == 200,
            self.config.duration_check: (
                result.duration_ms is not None
                and result.duration_ms < self.config.threshold_duration_ms
            ),
        }
        return result

    def _observe(self, result: RequestResult):
        if self.metrics is None:
            return
        endpoint = self.config.endpoint_name
        self.metrics.requests_total.labels(endpoint=endpoint, status=str(result.status_code)).inc()
        if result.duration_ms is not None:
            self.metrics.request_duration.labels(endpoint=endpoint).observe(result.duration_ms / 1000)
