"""Job store interface used by the worker and the request service."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel

from sensor_analytics.jobs.models import AnalysisJob, AnalysisStatus


class JobStore(ABC):
    """Abstract keyed record store for analytics jobs."""

    @abstractmethod
    async def create(self, job: AnalysisJob) -> AnalysisJob:
        ...

    @abstractmethod
    async def load(self, job_id: str) -> Optional[AnalysisJob]:
        """Return the job, or None if it does not exist."""
        ...

    @abstractmethod
    async def save(self, job_id: str, fields: Mapping[str, Any]) -> None:
        """Merge ``fields`` into the stored job and bump ``updated_at``."""
        ...

    @abstractmethod
    async def list_by_status(self, status: AnalysisStatus) -> List[AnalysisJob]:
        ...

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[AnalysisJob]:
        ...

    @abstractmethod
    async def list_by_sensor(self, sensor_id: str) -> List[AnalysisJob]:
        ...

    @abstractmethod
    async def delete(self, job_id: str) -> bool:
        """Delete a job. Returns False if it did not exist."""
        ...


def to_plain(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert models and enums in a partial update to JSON-friendly values.

    Nested models are dumped under their camelCase aliases.
    """
    plain: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, BaseModel):
            plain[key] = value.model_dump(mode="json", by_alias=True)
        elif isinstance(value, Enum):
            plain[key] = value.value
        else:
            plain[key] = value
    return plain
