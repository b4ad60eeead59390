"""Job dispatcher interface."""

from abc import ABC, abstractmethod


class JobDispatcher(ABC):
    """Abstract interface for queueing analytics jobs for processing."""

    @abstractmethod
    def enqueue(self, job_id: str) -> bool:
        """Queue a job id. Returns False if it was already queued."""
        ...

    @abstractmethod
    async def recover_pending(self) -> int:
        """Queue every stored job still pending. Returns how many were found."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start processing queued jobs."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
