"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Optional

from lut_action.jobs.models import JobRecord, LUTJobRequest


class JobDispatcher(ABC):
    """Abstract interface for job dispatching (in-process or external)."""

    @abstractmethod
    async def submit(self, request: LUTJobRequest) -> JobRecord:
        """Accept a job. Returns the pending record before any work runs."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        """Get current status of a job."""
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
