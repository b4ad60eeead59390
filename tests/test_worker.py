import asyncio
import threading

import pytest

from conftest import HAPPY_PHASES, ScriptedEngine, make_job, make_points
from sensor_analytics.errors import PersistenceFailure
from sensor_analytics.jobs.models import AnalysisKind, AnalysisStatus
from sensor_analytics.jobs.progress import StepStatus
from sensor_analytics.jobs.worker import AnalyticsWorker
from sensor_analytics.sensors.source import InMemorySensorDataSource
from sensor_analytics.storage.memory import InMemoryJobStore


async def _run(worker: AnalyticsWorker, *job_ids: str) -> None:
    await worker.start()
    for job_id in job_ids:
        worker.enqueue(job_id)
    await worker.join()


@pytest.mark.asyncio
async def test_trend_job_runs_to_completion(store, data_source):
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, data_source, engine)
    job = await store.create(make_job(AnalysisKind.TREND))

    await _run(worker, job.id)

    done = await store.load(job.id)
    assert done.status == AnalysisStatus.COMPLETED
    assert done.result == {"summary": "ok"}
    assert done.error is None
    assert done.progress.total_steps == 5
    assert done.progress.current_step == 4
    assert all(s.status == StepStatus.COMPLETED for s in done.progress.steps)
    assert all(s.end_time is not None for s in done.progress.steps)
    assert len(engine.datasets[0]) == 2


@pytest.mark.asyncio
async def test_forecast_job_completes_all_six_steps(store, data_source):
    worker = AnalyticsWorker(store, data_source, ScriptedEngine())
    job = await store.create(make_job(AnalysisKind.FORECAST))

    await _run(worker, job.id)

    done = await store.load(job.id)
    assert done.status == AnalysisStatus.COMPLETED
    assert done.progress.current_step == 5
    assert [s.status for s in done.progress.steps] == [StepStatus.COMPLETED] * 6


@pytest.mark.asyncio
async def test_job_moves_through_processing(store, data_source):
    worker = AnalyticsWorker(store, data_source, ScriptedEngine())
    job = await store.create(make_job())

    await _run(worker, job.id)

    statuses = [snap.status for snap in store.snapshots(job.id)]
    assert statuses[0] == AnalysisStatus.PROCESSING
    assert statuses[-1] == AnalysisStatus.COMPLETED
    assert AnalysisStatus.FAILED not in statuses


@pytest.mark.asyncio
async def test_engine_failure_after_analysis_start(store, data_source):
    engine = ScriptedEngine(fail_calls=[0], fail_after=2)
    worker = AnalyticsWorker(store, data_source, engine)
    job = await store.create(make_job(AnalysisKind.TREND))

    await _run(worker, job.id)

    failed = await store.load(job.id)
    assert failed.status == AnalysisStatus.FAILED
    assert "engine rejected the request" in failed.error
    assert failed.result is None
    steps = failed.progress.steps
    assert steps[0].status == StepStatus.COMPLETED
    assert steps[1].status == StepStatus.COMPLETED
    assert steps[2].status == StepStatus.FAILED
    assert steps[2].end_time is not None
    assert steps[3].status == StepStatus.PENDING
    assert steps[4].status == StepStatus.PENDING


@pytest.mark.asyncio
async def test_empty_dataset_fails_without_engine_call(store):
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, InMemorySensorDataSource(), engine)
    job = await store.create(make_job())

    await _run(worker, job.id)

    failed = await store.load(job.id)
    assert engine.calls == 0
    assert failed.status == AnalysisStatus.FAILED
    assert "No sensor data found" in failed.error
    assert failed.progress.steps[0].status == StepStatus.COMPLETED
    assert failed.progress.steps[1].status == StepStatus.FAILED
    assert all(s.status == StepStatus.PENDING for s in failed.progress.steps[2:])


@pytest.mark.asyncio
async def test_failed_job_does_not_stop_the_queue(store, data_source):
    engine = ScriptedEngine(fail_calls=[0], fail_after=3)
    worker = AnalyticsWorker(store, data_source, engine)
    a = await store.create(make_job())
    b = await store.create(make_job())
    c = await store.create(make_job())

    await _run(worker, a.id, b.id, c.id)

    assert (await store.load(a.id)).status == AnalysisStatus.FAILED
    assert (await store.load(b.id)).status == AnalysisStatus.COMPLETED
    assert (await store.load(c.id)).status == AnalysisStatus.COMPLETED
    assert engine.calls == 3

    # processing started in enqueue order
    first_writes = []
    for job_id, snap in store.history:
        if job_id not in first_writes:
            first_writes.append(job_id)
    assert first_writes == [a.id, b.id, c.id]


@pytest.mark.asyncio
async def test_only_one_job_processes_at_a_time(store, data_source):
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, data_source, engine, step_hold_seconds=0.001)
    jobs = [await store.create(make_job()) for _ in range(4)]

    await _run(worker, *[job.id for job in jobs])

    assert engine.max_in_flight == 1
    current = {}
    for job_id, snap in store.history:
        current[job_id] = snap.status
        processing = [j for j, s in current.items() if s == AnalysisStatus.PROCESSING]
        assert len(processing) <= 1


@pytest.mark.asyncio
async def test_step_progress_is_monotonic_in_store(store, data_source):
    worker = AnalyticsWorker(store, data_source, ScriptedEngine())
    job = await store.create(make_job(AnalysisKind.FORECAST))

    await _run(worker, job.id)

    snapshots = [s for s in store.snapshots(job.id) if s.progress is not None]
    watched = [s.progress.current_step for s in snapshots]
    assert watched == sorted(watched)
    for earlier, later in zip(snapshots, snapshots[1:]):
        for before, after in zip(earlier.progress.steps, later.progress.steps):
            if before.status in (StepStatus.COMPLETED, StepStatus.FAILED):
                assert after.status == before.status


@pytest.mark.asyncio
async def test_enqueue_ignores_ids_already_queued(store, data_source):
    worker = AnalyticsWorker(store, data_source, ScriptedEngine())
    job = await store.create(make_job())

    assert worker.enqueue(job.id) is True
    assert worker.enqueue(job.id) is False
    assert worker.pending_ids() == [job.id]
    assert worker.is_busy is False


@pytest.mark.asyncio
async def test_job_is_processed_once_when_enqueued_twice(store, data_source):
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, data_source, engine)
    job = await store.create(make_job())

    worker.enqueue(job.id)
    worker.enqueue(job.id)
    await worker.start()
    await worker.join()

    assert engine.calls == 1
    assert (await store.load(job.id)).status == AnalysisStatus.COMPLETED


@pytest.mark.asyncio
async def test_non_pending_job_is_skipped(store, data_source):
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, data_source, engine)
    job = await store.create(make_job())

    await _run(worker, job.id)
    worker.enqueue(job.id)
    await worker.join()

    assert engine.calls == 1
    assert (await store.load(job.id)).status == AnalysisStatus.COMPLETED


@pytest.mark.asyncio
async def test_missing_job_is_skipped(store, data_source):
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, data_source, engine)
    job = await store.create(make_job())

    await _run(worker, "does-not-exist", job.id)

    assert engine.calls == 1
    assert (await store.load(job.id)).status == AnalysisStatus.COMPLETED


@pytest.mark.asyncio
async def test_recover_pending_enqueues_stored_jobs(store, data_source):
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, data_source, engine)
    first = await store.create(make_job())
    second = await store.create(make_job())
    done = await store.create(make_job())
    await store.save(done.id, {"status": AnalysisStatus.COMPLETED})

    assert await worker.recover_pending() == 2
    assert worker.pending_ids() == [first.id, second.id]

    await worker.start()
    await worker.join()
    assert engine.calls == 2


class BrokenStore(InMemoryJobStore):
    """Accepts reads but rejects every write after ``allowed`` saves."""

    def __init__(self, allowed: int):
        super().__init__()
        self.allowed = allowed

    async def save(self, job_id, fields):
        if self.allowed <= 0:
            raise PersistenceFailure("store unavailable")
        self.allowed -= 1
        await super().save(job_id, fields)

    async def list_by_status(self, status):
        raise PersistenceFailure("store unavailable")


@pytest.mark.asyncio
async def test_persistence_failure_mid_job_keeps_worker_alive(data_source):
    store = BrokenStore(allowed=2)
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, data_source, engine)
    a = await store.create(make_job())
    b = await store.create(make_job())

    await _run(worker, a.id, b.id)

    assert worker.is_busy is False
    assert worker.pending_ids() == []
    # the second job could not even be marked processing
    assert (await store.load(b.id)).status == AnalysisStatus.PENDING


@pytest.mark.asyncio
async def test_recover_pending_tolerates_store_errors(data_source):
    worker = AnalyticsWorker(BrokenStore(allowed=0), data_source, ScriptedEngine())
    assert await worker.recover_pending() == 0


@pytest.mark.asyncio
async def test_enqueue_from_another_thread(store, data_source):
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, data_source, engine)
    job = await store.create(make_job())
    await worker.start()

    thread = threading.Thread(target=worker.enqueue, args=(job.id,))
    thread.start()
    thread.join()
    await worker.join()

    assert engine.calls == 1
    assert (await store.load(job.id)).status == AnalysisStatus.COMPLETED


@pytest.mark.asyncio
async def test_stop_cancels_running_job(store, data_source):
    release = asyncio.Event()

    class BlockingEngine(ScriptedEngine):
        async def analyze(self, dataset, kind, parameters, on_phase):
            await on_phase(*HAPPY_PHASES[1])
            await release.wait()
            return {}

    worker = AnalyticsWorker(store, data_source, BlockingEngine())
    job = await store.create(make_job())
    await worker.start()
    worker.enqueue(job.id)
    for _ in range(100):
        current = await store.load(job.id)
        if current.progress is not None and current.progress.steps[2].status == StepStatus.ACTIVE:
            break
        await asyncio.sleep(0.01)

    await worker.stop()

    cancelled = await store.load(job.id)
    assert cancelled.status == AnalysisStatus.FAILED
    assert cancelled.error == "Processing was cancelled"
    assert cancelled.progress.steps[2].status == StepStatus.FAILED
    assert worker.is_busy is False


@pytest.mark.asyncio
async def test_readings_outside_time_range_are_not_analyzed(store):
    source = InMemorySensorDataSource()
    job = make_job()
    window_start = job.parameters.time_range.start
    source.add("sensor-1", make_points(3, start=window_start))
    source.add("sensor-1", make_points(2, start=window_start.replace(year=2024)))
    engine = ScriptedEngine()
    worker = AnalyticsWorker(store, source, engine)
    await store.create(job)

    await _run(worker, job.id)

    assert len(engine.datasets[0]) == 3
