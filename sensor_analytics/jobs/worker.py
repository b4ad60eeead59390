"""In-process analytics worker: a single-flight job queue.

Runs sensor analyses one at a time on the event loop the worker was started
on. Any thread may enqueue; the pending deque and the busy flag are the only
shared state and are guarded by a lock. A job that fails is recorded as
failed and the worker moves straight on to the next queued id.
"""

import asyncio
import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from sensor_analytics.engines.base import AnalysisEngine
from sensor_analytics.errors import EmptyDatasetFailure, EngineFailure, SensorAnalyticsError
from sensor_analytics.jobs.dispatcher import JobDispatcher
from sensor_analytics.jobs.models import AnalysisStatus
from sensor_analytics.jobs.progress import ProgressInfo, StepRole, build_progress
from sensor_analytics.jobs.projector import PhaseProjector
from sensor_analytics.sensors.source import SensorDataSource
from sensor_analytics.storage.base import JobStore

logger = logging.getLogger(__name__)


class AnalyticsWorker(JobDispatcher):
    """Local single-flight job queue. Processes analytics jobs FIFO via asyncio."""

    def __init__(
        self,
        store: JobStore,
        data_source: SensorDataSource,
        engine: AnalysisEngine,
        step_hold_seconds: float = 0.0,
    ):
        """
        step_hold_seconds: pause between the final steps' transitions while
            the completion cascade runs, so pollers can observe each step.
        """
        self._store = store
        self._data_source = data_source
        self._engine = engine
        self._step_hold_seconds = step_hold_seconds
        self._pending: Deque[str] = deque()
        self._lock = threading.Lock()
        self._busy = False
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._busy

    def pending_ids(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def enqueue(self, job_id: str) -> bool:
        with self._lock:
            added = job_id not in self._pending
            if added:
                self._pending.append(job_id)
            queue_length = len(self._pending)
            start_drain = self._claim()

        if added:
            logger.info(f"Queued analytics {job_id} for processing (queue length: {queue_length})")
        else:
            logger.debug(f"Analytics {job_id} is already queued")

        if start_drain:
            self._schedule_drain()
        return added

    async def recover_pending(self) -> int:
        try:
            jobs = await self._store.list_by_status(AnalysisStatus.PENDING)
        except Exception as e:
            logger.error(f"Error checking for pending analytics: {e}")
            return 0

        if jobs:
            logger.info(f"Found {len(jobs)} pending analytics")
        for job in jobs:
            self.enqueue(job.id)
        return len(jobs)

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        with self._lock:
            self._running = True
            start_drain = self._claim()
        if start_drain:
            self._spawn_drain()

    async def stop(self) -> None:
        with self._lock:
            self._running = False
        task = self._task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        with self._lock:
            self._busy = False

    async def join(self) -> None:
        """Wait until the queue is drained and no job is in flight."""
        while True:
            task = self._task
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            with self._lock:
                idle = not self._busy and (not self._pending or not self._running)
            if idle:
                return
            # A drain was scheduled from another thread and has not started yet
            await asyncio.sleep(0)

    def _claim(self) -> bool:
        """Mark the worker busy if a drain should start. Caller holds the lock."""
        if self._running and not self._busy and self._pending:
            self._busy = True
            return True
        return False

    def _schedule_drain(self) -> None:
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is self._loop:
            self._spawn_drain()
        else:
            self._loop.call_soon_threadsafe(self._spawn_drain)

    def _spawn_drain(self) -> None:
        self._task = self._loop.create_task(self._drain())

    async def _drain(self) -> None:
        """Process queued ids one at a time until the queue is empty."""
        while True:
            with self._lock:
                if not self._pending or not self._running:
                    self._busy = False
                    return
                job_id = self._pending.popleft()

            try:
                await self._process(job_id)
            except asyncio.CancelledError:
                with self._lock:
                    self._busy = False
                raise
            except Exception:
                logger.exception(f"Unexpected error while processing analytics {job_id}")

    async def _process(self, job_id: str) -> None:
        logger.info(f"Processing analytics {job_id}")
        progress: Optional[ProgressInfo] = None

        try:
            job = await self._store.load(job_id)
            if job is None:
                logger.error(f"Analytics with ID {job_id} not found")
                return
            if job.status != AnalysisStatus.PENDING:
                logger.warning(f"Skipping analytics {job_id} with status {job.status.value}")
                return

            progress = build_progress(job.kind)
            await self._store.save(job_id, {
                "status": AnalysisStatus.PROCESSING,
                "progress": progress,
            })

            time_range = job.parameters.time_range
            progress.activate(progress.index_of(StepRole.PREPARATION))
            await self._save_progress(job_id, progress)

            logger.debug(
                f"Fetching sensor data for sensor {job.sensor_id} "
                f"from {time_range.start.isoformat()} to {time_range.end.isoformat()}"
            )
            dataset = await self._data_source.fetch_range(
                job.sensor_id, time_range.start, time_range.end
            )
            progress.complete(progress.index_of(StepRole.PREPARATION))
            progress.activate(progress.index_of(StepRole.VALIDATION))
            await self._save_progress(job_id, progress)

            if not dataset:
                raise EmptyDatasetFailure(
                    f"No sensor data found for sensor {job.sensor_id} in the requested time range"
                )
            logger.debug(f"Found {len(dataset)} data points for sensor {job.sensor_id}")
            progress.complete(progress.index_of(StepRole.VALIDATION))
            await self._save_progress(job_id, progress)

            projector = PhaseProjector(
                progress,
                job.kind,
                persist=lambda p: self._save_progress(job_id, p),
                hold_seconds=self._step_hold_seconds,
            )
            try:
                result = await self._engine.analyze(dataset, job.kind, job.parameters, projector)
            except SensorAnalyticsError:
                raise
            except Exception as e:
                raise EngineFailure(f"{type(e).__name__}: {e}") from e

            await self._store.save(job_id, {
                "status": AnalysisStatus.COMPLETED,
                "progress": progress,
                "result": result,
            })
            logger.info(f"Successfully processed analytics {job_id}")

        except asyncio.CancelledError:
            logger.warning(f"Processing of analytics {job_id} was cancelled")
            await self._fail(job_id, progress, "Processing was cancelled")
            raise
        except Exception as e:
            logger.error(f"Error processing analytics {job_id}: {e}")
            await self._fail(job_id, progress, str(e))

    async def _save_progress(self, job_id: str, progress: ProgressInfo) -> None:
        await self._store.save(job_id, {"progress": progress})

    async def _fail(self, job_id: str, progress: Optional[ProgressInfo], reason: str) -> None:
        fields: Dict[str, Any] = {"status": AnalysisStatus.FAILED, "error": reason}
        if progress is not None:
            failed_steps = progress.fail_active()
            logger.debug(f"Marked steps {failed_steps} of analytics {job_id} as failed")
            fields["progress"] = progress
        try:
            await self._store.save(job_id, fields)
        except Exception as e:
            logger.error(f"Error updating status of analytics {job_id}: {e}")
