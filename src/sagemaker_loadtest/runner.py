"""
Load Test Runner - Constant-arrival-rate executor for endpoint iterations.

Handles:
- One-off setup (instance credentials)
- Starting iterations at a fixed rate, independent of response times
- Virtual user pooling between pre-allocated and max VUs
- Dropped and interrupted iteration accounting
- Live statistics display
- Graceful shutdown
"""

import asyncio
import signal
from datetime import datetime
from typing import List, Optional, Set

import httpx
import structlog

from .audio_pool import AudioPool, resolve_content_type
from .collector import ResultsCollector
from .config import LoadTestConfig
from .credentials import Credentials, fetch_credentials
from .metrics import METRICS, LoadTestMetrics
from .thresholds import ThresholdResult, evaluate_thresholds, parse_thresholds
from .worker import EndpointWorker, WorkerConfig

logger = structlog.get_logger()


class LoadTestRunner:
    """
    Orchestrates load test execution.

    Usage:
        config = LoadTestConfig(endpoint_name="my-endpoint")
        runner = LoadTestRunner(config)

        # Run the test
        await runner.run()

        # Evaluate pass/fail criteria
        results = runner.check_thresholds()
    """

    def __init__(
        self,
        config: LoadTestConfig,
        metrics: LoadTestMetrics = METRICS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        handle_signals: bool = True,
    ):
        self.config = config
        self.metrics = metrics
        self.audio_pool = AudioPool(config.dataset_dir)
        self.collector = ResultsCollector()
        self.credentials: Optional[Credentials] = None

        self._transport = transport
        self._handle_signals = handle_signals
        self._idle_vus: List[int] = []
        self._allocated_vus = 0
        self._active_vus = 0
        self._tasks: Set[asyncio.Task] = set()
        self._running = False
        self._shutdown_event: Optional[asyncio.Event] = None
        self._stats_task: Optional[asyncio.Task] = None

    async def setup(self, client: httpx.AsyncClient) -> Credentials:
        """Fetch the credentials shared by every iteration."""
        self.credentials = await fetch_credentials(
            client,
            base_url=self.config.imds_url,
            token_ttl=self.config.imds_token_ttl,
            timeout=self.config.imds_timeout,
        )
        logger.info("Setup completed, credentials fetched successfully")
        return self.credentials

    async def run(self) -> ResultsCollector:
        """
        Run the complete load test.

        Returns:
            ResultsCollector with all results.

        Raises:
            PayloadNotFoundError: If TARGET_FILE is not in the dataset directory.
            CredentialsError: If setup can't obtain credentials.
        """
        logger.info(
            "Starting load test",
            endpoint=self.config.endpoint_name,
            region=self.config.aws_region,
            target_file=self.config.target_file,
            rate=self.config.rate,
            time_unit=self.config.time_unit,
            duration=self.config.duration,
            pre_allocated_vus=self.config.pre_allocated_vus,
            max_vus=self.config.max_vus,
        )

        # Init stage: every payload is read before any VU runs
        self.audio_pool.load()
        payload = self.audio_pool.get(self.config.target_file)
        content_type = resolve_content_type(payload.name, self.config.content_type)

        self._shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        if self._handle_signals:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._signal_handler)

        try:
            async with self._create_client() as client:
                credentials = await self.setup(client)

                worker = EndpointWorker(
                    config=WorkerConfig(
                        endpoint_name=self.config.endpoint_name,
                        region=self.config.aws_region,
                        content_type=content_type,
                        sensitivity=self.config.sensitivity,
                        threshold_duration_ms=self.config.threshold_duration,
                        request_timeout=self.config.request_timeout,
                        iteration_sleep=self.config.iteration_sleep,
                    ),
                    payload=payload,
                    client=client,
                    on_result=self.collector.add_result,
                    metrics=self.metrics,
                )

                self._allocate_vus(self.config.pre_allocated_vus)
                self._running = True
                self.collector.start()

                try:
                    self._stats_task = asyncio.create_task(self._display_live_stats())
                    await self._execute_arrival_phase(worker, credentials)
                    await self._drain()
                finally:
                    self._running = False
                    self.collector.stop()

                    if self._stats_task:
                        self._stats_task.cancel()
                        await asyncio.gather(self._stats_task, return_exceptions=True)

                    await self._cancel_iterations()
        finally:
            if self._handle_signals:
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.remove_signal_handler(sig)

        self.collector.print_summary()
        return self.collector

    @property
    def interrupted(self) -> bool:
        """True when a shutdown signal ended the arrival phase early."""
        return self._shutdown_event is not None and self._shutdown_event.is_set()

    def check_thresholds(self) -> List[ThresholdResult]:
        """Evaluate the configured thresholds against the collected results."""
        results = evaluate_thresholds(self.collector, parse_thresholds(self.config.thresholds))
        for result in results:
            log = logger.info if result.passed else logger.error
            log(
                "Threshold " + ("passed" if result.passed else "crossed"),
                metric=result.metric,
                expression=result.expression,
                observed=round(result.observed, 4),
            )
        return results

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            limits=httpx.Limits(
                max_connections=self.config.max_vus + 1,
                max_keepalive_connections=self.config.max_vus,
            ),
        )

    async def _execute_arrival_phase(self, worker: EndpointWorker, credentials: Credentials):
        """Start an iteration every interval until the duration has elapsed."""
        loop = asyncio.get_running_loop()
        interval = self.config.iteration_interval
        duration = self.config.duration_seconds
        start = loop.time()
        iteration = 0

        logger.info("Arrival phase started", interval=interval, duration=duration)

        while not self._shutdown_event.is_set():
            offset = iteration * interval
            if offset >= duration:
                break

            delay = start + offset - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass  # Next iteration is due

            self._start_iteration(worker, credentials, iteration)
            iteration += 1

        logger.info("Arrival phase complete", iterations_due=iteration)

    def _start_iteration(self, worker: EndpointWorker, credentials: Credentials, iteration: int):
        vu_id = self._acquire_vu()
        if vu_id is None:
            self.collector.add_dropped_iteration()
            self.metrics.dropped_iterations.labels(endpoint=self.config.endpoint_name).inc()
            logger.debug("Dropped iteration, all VUs busy", iteration=iteration, max_vus=self.config.max_vus)
            return

        task = asyncio.create_task(self._run_on_vu(worker, credentials, vu_id, iteration))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_on_vu(self, worker: EndpointWorker, credentials: Credentials, vu_id: int, iteration: int):
        self._active_vus += 1
        self.metrics.active_vus.labels(endpoint=self.config.endpoint_name).set(self._active_vus)
        try:
            await worker.run_iteration(credentials, vu_id, iteration)
        except Exception:
            logger.exception("Iteration raised", vu=vu_id, iteration=iteration)
        finally:
            self._active_vus -= 1
            self.metrics.active_vus.labels(endpoint=self.config.endpoint_name).set(self._active_vus)
            self._idle_vus.append(vu_id)

    def _allocate_vus(self, count: int):
        for _ in range(count):
            self._idle_vus.append(self._allocated_vus)
            self._allocated_vus += 1
        self.metrics.allocated_vus.labels(endpoint=self.config.endpoint_name).set(self._allocated_vus)

    def _acquire_vu(self) -> Optional[int]:
        """Take an idle VU, growing the pool up to max_vus; None when exhausted."""
        if not self._idle_vus and self._allocated_vus < self.config.max_vus:
            self._allocate_vus(1)
            logger.debug("Allocated VU", allocated=self._allocated_vus)
        if self._idle_vus:
            return self._idle_vus.pop()
        return None

    async def _drain(self):
        """Give in-flight iterations graceful_stop to finish, then interrupt them."""
        if not self._tasks:
            return

        graceful_stop = self.config.graceful_stop_seconds
        logger.info("Waiting for in-flight iterations", count=len(self._tasks), graceful_stop=graceful_stop)
        await asyncio.wait(set(self._tasks), timeout=graceful_stop)

    async def _cancel_iterations(self):
        pending = [task for task in self._tasks if not task.done()]
        if not pending:
            return

        for task in pending:
            task.cancel()
            self.collector.add_interrupted_iteration()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.warning("Interrupted iterations", count=len(pending))

    async def _display_live_stats(self):
        """Display live statistics periodically."""
        while self._running:
            await asyncio.sleep(self.config.live_stats_interval)
            stats = self.collector.get_live_stats()

            print(
                f"\r[{datetime.now().strftime('%H:%M:%S')}] "
                f"VUs: {self._active_vus:3d}/{self._allocated_vus:3d} | "
                f"Requests: {stats['total_requests']:5d} | "
                f"Success: {stats['success_rate']*100:5.1f}% | "
                f"Dropped: {stats['dropped_iterations']:4d} | "
                f"RPS: {stats['requests_per_second']:5.2f} | "
                f"Avg: {stats['avg_duration_ms']:6.0f}ms",
                end="",
                flush=True,
            )

    def _signal_handler(self):
        """Handle shutdown signals."""
        logger.info("Shutdown signal received")
        self._shutdown_event.set()
