"""Exception taxonomy for analytics job processing.

Job-level failures are absorbed by the worker at the job boundary and
recorded as ``status = failed``; none of them stop the queue.
"""


class SensorAnalyticsError(Exception):
    """Base exception for sensor analytics errors."""


class ValidationFailure(SensorAnalyticsError):
    """Raised when a request is missing fields or has an invalid time range."""


class EmptyDatasetFailure(SensorAnalyticsError):
    """Raised when no sensor readings exist in the requested time range."""


class EngineFailure(SensorAnalyticsError):
    """Raised when the analysis engine rejects a unit of work."""


class PersistenceFailure(SensorAnalyticsError):
    """Raised when the job store cannot read or write a record."""


class JobNotFound(SensorAnalyticsError):
    """Raised when an analytics job id does not exist."""

    def __init__(self, job_id: str):
        super().__init__(f"Analytics {job_id} not found")
        self.job_id = job_id
