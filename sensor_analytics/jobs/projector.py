"""Projects engine phase events onto a job's progress steps.

The engine reports free-form phases with a completion ratio; the projector
turns each call into at most one step mutation (the completion cascade
excepted) and persists the progress only when something changed.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict

from sensor_analytics.engines.base import Phase
from sensor_analytics.jobs.models import AnalysisKind
from sensor_analytics.jobs.progress import ProgressInfo, StepRole

logger = logging.getLogger(__name__)

PersistProgress = Callable[[ProgressInfo], Awaitable[None]]

# Progress ratios in [ANALYSIS_DEBOUNCE_RATIO, 1.0) do not touch the store
ANALYSIS_DEBOUNCE_RATIO = 0.7


class PhaseProjector:
    """Callable passed to an engine as its ``on_phase`` callback."""

    def __init__(
        self,
        progress: ProgressInfo,
        kind: AnalysisKind,
        persist: PersistProgress,
        hold_seconds: float = 0.0,
    ):
        self.progress = progress
        self._kind = kind
        self._persist = persist
        self._hold_seconds = hold_seconds
        self._handlers: Dict[str, Callable[[float], Awaitable[bool]]] = {
            Phase.DATA_PREPARATION.value: self._on_data_preparation,
            Phase.SENSOR_ANALYSIS_START.value: self._on_sensor_analysis_start,
            Phase.SENSOR_ANALYSIS_PROGRESS.value: self._on_sensor_analysis_progress,
            Phase.CORRELATION_ANALYSIS.value: self._on_correlation_analysis,
            Phase.SUMMARY_GENERATION.value: self._on_summary_generation,
            Phase.ANALYSIS_COMPLETE.value: self._on_analysis_complete,
        }

    async def __call__(self, phase: str, detail: str, ratio: float) -> None:
        key = phase.value if isinstance(phase, Phase) else phase
        handler = self._handlers.get(key)
        if handler is None:
            logger.debug(f"Ignoring unknown phase '{key}' ({detail})")
            return

        ratio = min(max(float(ratio), 0.0), 1.0)
        logger.debug(f"Phase {key} at {ratio:.2f}: {detail}")
        if await handler(ratio):
            await self._persist(self.progress)

    def _activate(self, role: StepRole) -> bool:
        index = self.progress.index_of(role)
        return index is not None and self.progress.activate(index)

    def _complete(self, role: StepRole) -> bool:
        index = self.progress.index_of(role)
        return index is not None and self.progress.complete(index)

    async def _on_data_preparation(self, ratio: float) -> bool:
        return self._activate(StepRole.PREPARATION)

    async def _on_sensor_analysis_start(self, ratio: float) -> bool:
        return self._activate(StepRole.ANALYSIS)

    async def _on_sensor_analysis_progress(self, ratio: float) -> bool:
        if ratio >= 1.0:
            return self._complete(StepRole.ANALYSIS)
        if ratio < ANALYSIS_DEBOUNCE_RATIO:
            return self._activate(StepRole.ANALYSIS)
        return False

    async def _on_correlation_analysis(self, ratio: float) -> bool:
        # Completion of the detection step waits for summary_generation
        return self._activate(StepRole.DETECTION)

    async def _on_summary_generation(self, ratio: float) -> bool:
        changed = self._complete(StepRole.DETECTION)
        if self._kind == AnalysisKind.FORECAST:
            changed = self._activate(StepRole.COMPUTATION) or changed
        return changed

    async def _on_analysis_complete(self, ratio: float) -> bool:
        if self._complete(StepRole.ANALYSIS):
            await self._persist(self.progress)

        first = self.progress.index_of(StepRole.ANALYSIS) + 1
        for step in self.progress.steps[first:]:
            if step.is_terminal:
                continue
            if self.progress.activate(step.index):
                await self._persist(self.progress)
                await self._hold()
            self.progress.complete(step.index)
            await self._persist(self.progress)
            await self._hold()
        return False

    async def _hold(self) -> None:
        if self._hold_seconds > 0:
            await asyncio.sleep(self._hold_seconds)
