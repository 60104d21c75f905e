"""Job dispatcher interface."""

from abc import ABC, abstractmethod

from app.jobs.models import AnalysisRequest


class JobDispatcher(ABC):
    """Abstract interface for detaching analysis work from the request path."""

    @abstractmethod
    async def submit(self, request: AnalysisRequest) -> str:
        """Queue an analysis for background processing. Returns job_id."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start worker loops)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
