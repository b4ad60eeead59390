"""Job store backed by a Supabase (PostgREST) table.

Row layout follows the gateway's ``SensorAnalytics`` table: the job id is
stored as ``analytics_id`` and the analysis kind as ``type``; ``parameters``,
``progress`` and ``result`` are JSONB columns holding camelCase keys. The
table has no error column, so a failed job's reason is kept in ``result``
as ``{"error": ...}``.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError
from supabase import Client

from sensor_analytics.errors import PersistenceFailure
from sensor_analytics.jobs.models import AnalysisJob, AnalysisStatus, utcnow
from sensor_analytics.storage.base import JobStore, to_plain

logger = logging.getLogger(__name__)

_FIELD_TO_COLUMN = {"id": "analytics_id", "kind": "type"}
_COLUMN_TO_FIELD = {column: field for field, column in _FIELD_TO_COLUMN.items()}


def _to_columns(data: Dict[str, Any]) -> Dict[str, Any]:
    row = {_FIELD_TO_COLUMN.get(k, k): v for k, v in data.items()}
    if "error" in row:
        error = row.pop("error")
        if error is not None and row.get("result") is None:
            row["result"] = {"error": error}
    return row


def job_to_row(job: AnalysisJob) -> Dict[str, Any]:
    return _to_columns(job.model_dump(mode="json", by_alias=True))


def row_to_job(row: Mapping[str, Any]) -> AnalysisJob:
    data = {_COLUMN_TO_FIELD.get(k, k): v for k, v in row.items()}
    result = data.get("result")
    if data.get("status") == AnalysisStatus.FAILED.value and isinstance(result, dict) and set(result) == {"error"}:
        data["error"] = result["error"]
        data["result"] = None
    return AnalysisJob.model_validate(data)


class SupabaseJobStore(JobStore):
    def __init__(self, client: Client, table: str = "SensorAnalytics"):
        self._client = client
        self._table = table

    async def create(self, job: AnalysisJob) -> AnalysisJob:
        try:
            response = self._client.table(self._table).insert(job_to_row(job)).execute()
        except Exception as e:
            raise PersistenceFailure(f"Failed to create analytics {job.id}: {e}") from e
        if response.data:
            return row_to_job(response.data[0])
        return job

    async def load(self, job_id: str) -> Optional[AnalysisJob]:
        try:
            response = (
                self._client.table(self._table)
                .select("*")
                .eq("analytics_id", job_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(f"Failed to load analytics {job_id}: {e}") from e
        if not response.data:
            return None
        try:
            return row_to_job(response.data[0])
        except ValidationError as e:
            raise PersistenceFailure(f"Analytics {job_id} has a malformed row: {e}") from e

    async def save(self, job_id: str, fields: Mapping[str, Any]) -> None:
        update = _to_columns(to_plain(fields))
        update["updated_at"] = utcnow().isoformat()
        try:
            response = (
                self._client.table(self._table)
                .update(update)
                .eq("analytics_id", job_id)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(f"Failed to update analytics {job_id}: {e}") from e
        if not response.data:
            raise PersistenceFailure(f"Analytics {job_id} not found")

    async def list_by_status(self, status: AnalysisStatus) -> List[AnalysisJob]:
        return self._select("status", status.value)

    async def list_by_user(self, user_id: str) -> List[AnalysisJob]:
        return self._select("user_id", user_id)

    async def list_by_sensor(self, sensor_id: str) -> List[AnalysisJob]:
        return self._select("sensor_id", sensor_id)

    async def delete(self, job_id: str) -> bool:
        try:
            response = (
                self._client.table(self._table)
                .delete()
                .eq("analytics_id", job_id)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(f"Failed to delete analytics {job_id}: {e}") from e
        return bool(response.data)

    def _select(self, column: str, value: str) -> List[AnalysisJob]:
        try:
            response = (
                self._client.table(self._table)
                .select("*")
                .eq(column, value)
                .order("created_at")
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(f"Failed to query analytics by {column}: {e}") from e
        jobs = []
        for row in response.data or []:
            try:
                jobs.append(row_to_job(row))
            except ValidationError as e:
                logger.error(f"Skipping malformed analytics row {row.get('analytics_id')}: {e}")
        return jobs
