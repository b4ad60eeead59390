"""Request-side operations on analytics jobs.

Creates jobs in ``pending`` state and hands their ids to the dispatcher;
everything after that belongs to the worker.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from sensor_analytics.errors import JobNotFound, ValidationFailure
from sensor_analytics.jobs.dispatcher import JobDispatcher
from sensor_analytics.jobs.models import AnalysisJob, AnalysisKind, AnalysisParameters
from sensor_analytics.storage.base import JobStore

logger = logging.getLogger(__name__)


class SensorAnalyticsService:
    def __init__(self, store: JobStore, dispatcher: JobDispatcher):
        self._store = store
        self._dispatcher = dispatcher

    async def create_analytics(
        self,
        user_id: str,
        sensor_id: str,
        kind: Union[AnalysisKind, str],
        parameters: Union[AnalysisParameters, Dict[str, Any]],
    ) -> AnalysisJob:
        """Validate and store a new pending job, then queue it for processing."""
        if not user_id:
            raise ValidationFailure("user_id is required")
        if not sensor_id:
            raise ValidationFailure("sensor_id is required")

        try:
            job = AnalysisJob(
                sensor_id=sensor_id,
                user_id=user_id,
                kind=kind,
                parameters=parameters,
            )
        except ValidationError as e:
            raise ValidationFailure(f"Invalid analytics request: {e}") from e

        job = await self._store.create(job)
        logger.debug(f"Created analytics {job.id} ({job.kind.value}) for sensor {sensor_id}")

        self._dispatcher.enqueue(job.id)
        return job

    async def get_analytics(self, job_id: str) -> AnalysisJob:
        job = await self._store.load(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    async def list_for_user(self, user_id: str) -> List[AnalysisJob]:
        return await self._store.list_by_user(user_id)

    async def list_for_sensor(
        self,
        sensor_id: str,
        user_id: Optional[str] = None,
    ) -> List[AnalysisJob]:
        jobs = await self._store.list_by_sensor(sensor_id)
        if user_id is not None:
            jobs = [j for j in jobs if j.user_id == user_id]
        return jobs

    async def delete_analytics(self, job_id: str) -> None:
        if not await self._store.delete(job_id):
            raise JobNotFound(job_id)
        logger.info(f"Deleted analytics {job_id}")
