"""Base provider interface.

A provider submits generation jobs to a remote inference service and
reports their status. Providers must not write to the database or touch
local result files; the worker owns both.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ProviderBase(ABC):
    """Abstract base class for generation providers."""

    @abstractmethod
    def submit_job(self, input: dict[str, Any], model_id: str | None = None) -> str:
        """Submit a job.

        Args:
            input: Model inputs (prompt, paths, parameters).
            model_id: Model used to shape the payload.

        Returns:
            Remote job id.
        """

    @abstractmethod
    def get_job_status(self, job_id: str) -> dict[str, Any]:
        """Current status document for a remote job."""

    @abstractmethod
    def wait_for_completion(self, job_id: str, max_wait: float | None = None) -> dict[str, Any]:
        """Block until the job completes.

        Returns:
            The final status document, including its output.

        Raises:
            RuntimeError: If the job fails or the wait times out.
        """
