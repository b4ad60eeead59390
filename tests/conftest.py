import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

import pytest

from sensor_analytics.engines.base import AnalysisEngine, Phase
from sensor_analytics.jobs.models import AnalysisJob, AnalysisKind, AnalysisParameters, TimeRange
from sensor_analytics.sensors.models import Measurements, SensorDataPoint
from sensor_analytics.sensors.source import InMemorySensorDataSource
from sensor_analytics.storage.memory import InMemoryJobStore

T0 = datetime(2025, 5, 1, 8, 0, tzinfo=timezone.utc)

HAPPY_PHASES: List[Tuple[str, str, float]] = [
    (Phase.DATA_PREPARATION.value, "prepare", 0.1),
    (Phase.SENSOR_ANALYSIS_START.value, "start", 0.2),
    (Phase.SENSOR_ANALYSIS_PROGRESS.value, "progress", 1.0),
    (Phase.CORRELATION_ANALYSIS.value, "correlate", 0.6),
    (Phase.SUMMARY_GENERATION.value, "summarize", 0.9),
    (Phase.ANALYSIS_COMPLETE.value, "done", 1.0),
]


def make_points(count: int, start: datetime = T0, step: timedelta = timedelta(hours=1)) -> List[SensorDataPoint]:
    return [
        SensorDataPoint(
            timestamp=start + i * step,
            measurements=Measurements(
                temperature=20.0 + 0.5 * i,
                humidity=50.0 - 0.5 * i,
                soil_moisture=45.0,
            ),
        )
        for i in range(count)
    ]


def make_job(
    kind: AnalysisKind = AnalysisKind.TREND,
    sensor_id: str = "sensor-1",
    job_id: Optional[str] = None,
) -> AnalysisJob:
    fields = {}
    if job_id is not None:
        fields["id"] = job_id
    return AnalysisJob(
        sensor_id=sensor_id,
        user_id="user-1",
        kind=kind,
        parameters=AnalysisParameters(
            time_range=TimeRange(start=T0, end=T0 + timedelta(days=1)),
        ),
        **fields,
    )


class ScriptedEngine(AnalysisEngine):
    """Replays a fixed phase script, then returns a result or raises.

    ``fail_calls`` holds the 0-based call numbers that raise after emitting
    the first ``fail_after`` phases.
    """

    name = "scripted"

    def __init__(
        self,
        phases: Sequence[Tuple[str, str, float]] = HAPPY_PHASES,
        result: Optional[dict] = None,
        fail_calls: Sequence[int] = (),
        fail_after: int = 0,
    ):
        self.phases = list(phases)
        self.result = result if result is not None else {"summary": "ok"}
        self.fail_calls = set(fail_calls)
        self.fail_after = fail_after
        self.calls = 0
        self.datasets: List[list] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def analyze(self, dataset, kind, parameters, on_phase):
        call = self.calls
        self.calls += 1
        self.datasets.append(list(dataset))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            failing = call in self.fail_calls
            phases = self.phases[: self.fail_after] if failing else self.phases
            for phase, detail, ratio in phases:
                await on_phase(phase, detail, ratio)
                await asyncio.sleep(0)
            if failing:
                raise RuntimeError("engine rejected the request")
            return dict(self.result)
        finally:
            self.in_flight -= 1


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def data_source() -> InMemorySensorDataSource:
    source = InMemorySensorDataSource()
    source.add("sensor-1", make_points(2))
    return source
