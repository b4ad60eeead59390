"""Analytics job record data model."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
import uuid

from sensor_analytics.jobs.progress import ProgressInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisKind(str, Enum):
    TREND = "trend"
    ANOMALY = "anomaly"
    FORECAST = "forecast"


class TimeRange(BaseModel):
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.start > self.end:
            raise ValueError("time range start must not be after end")
        return self


class AnalysisParameters(BaseModel):
    """Request parameters. Unknown keys are kept and handed to the engine.

    Stored as the gateway writes them: ``{"timeRange": {...}, ...}``.
    """
    model_config = ConfigDict(
        extra="allow",
        protected_namespaces=(),
        alias_generator=to_camel,
        populate_by_name=True,
    )

    time_range: TimeRange
    model: Optional[str] = None


class AnalysisJob(BaseModel):
    """Tracks the lifecycle of one sensor analysis request."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sensor_id: str
    user_id: str
    kind: AnalysisKind
    parameters: AnalysisParameters
    status: AnalysisStatus = AnalysisStatus.PENDING
    progress: Optional[ProgressInfo] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)