"""In-process job store for local development and tests."""

import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sensor_analytics.errors import PersistenceFailure
from sensor_analytics.jobs.models import AnalysisJob, AnalysisStatus, utcnow
from sensor_analytics.storage.base import JobStore, to_plain


class InMemoryJobStore(JobStore):
    """Keeps jobs in a dict. Every read returns a detached copy.

    ``history`` records a snapshot after each write so callers can inspect
    how a job evolved while it was processed.
    """

    def __init__(self):
        self._jobs: Dict[str, AnalysisJob] = {}
        self._lock = threading.Lock()
        self.history: List[Tuple[str, AnalysisJob]] = []

    async def create(self, job: AnalysisJob) -> AnalysisJob:
        with self._lock:
            if job.id in self._jobs:
                raise PersistenceFailure(f"Analytics {job.id} already exists")
            self._jobs[job.id] = job.model_copy(deep=True)
        return job.model_copy(deep=True)

    async def load(self, job_id: str) -> Optional[AnalysisJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def save(self, job_id: str, fields: Mapping[str, Any]) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise PersistenceFailure(f"Analytics {job_id} not found")
            data = job.model_dump()
            data.update(to_plain(fields))
            data["updated_at"] = utcnow()
            updated = AnalysisJob.model_validate(data)
            self._jobs[job_id] = updated
            self.history.append((job_id, updated.model_copy(deep=True)))

    async def list_by_status(self, status: AnalysisStatus) -> List[AnalysisJob]:
        return self._select(lambda j: j.status == status)

    async def list_by_user(self, user_id: str) -> List[AnalysisJob]:
        return self._select(lambda j: j.user_id == user_id)

    async def list_by_sensor(self, sensor_id: str) -> List[AnalysisJob]:
        return self._select(lambda j: j.sensor_id == sensor_id)

    async def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def snapshots(self, job_id: str) -> List[AnalysisJob]:
        return [job for jid, job in self.history if jid == job_id]

    def _select(self, predicate) -> List[AnalysisJob]:
        with self._lock:
            jobs = [j.model_copy(deep=True) for j in self._jobs.values() if predicate(j)]
        return sorted(jobs, key=lambda j: j.created_at)
