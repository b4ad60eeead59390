"""Analysis engine interface and phase vocabulary."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Sequence

from sensor_analytics.jobs.models import AnalysisKind, AnalysisParameters
from sensor_analytics.sensors.models import SensorDataPoint


class Phase(str, Enum):
    """Progress events an engine emits while it works."""
    DATA_PREPARATION = "data_preparation"
    SENSOR_ANALYSIS_START = "sensor_analysis_start"
    SENSOR_ANALYSIS_PROGRESS = "sensor_analysis_progress"
    CORRELATION_ANALYSIS = "correlation_analysis"
    SUMMARY_GENERATION = "summary_generation"
    ANALYSIS_COMPLETE = "analysis_complete"


# Type alias for phase callbacks: fn(phase, detail, ratio in [0, 1])
PhaseCallback = Callable[[str, str, float], Awaitable[None]]


class AnalysisEngine(ABC):
    """Abstract base class for analysis engines.

    An engine receives the chronologically ordered readings of one sensor,
    reports progress through ``on_phase`` in emission order, and returns a
    JSON-serialisable result. On success it must emit
    ``Phase.ANALYSIS_COMPLETE`` exactly once; on failure it raises and emits
    nothing further.
    """

    name: str = "engine"

    @abstractmethod
    async def analyze(
        self,
        dataset: Sequence[SensorDataPoint],
        kind: AnalysisKind,
        parameters: AnalysisParameters,
        on_phase: PhaseCallback,
    ) -> Dict[str, Any]:
        """Run the analysis. Returns a dict of results."""
        ...

    def list_models(self) -> List[str]:
        """Model names selectable via the ``model`` parameter."""
        return [self.name]

    async def check_status(self) -> Dict[str, str]:
        return {"status": "connected", "message": f"{self.name} is available"}
