"""Exception hierarchy shared by the agent and the ingestion service."""

from __future__ import annotations


class HarvesterError(Exception):
    """Base class for all harvester errors."""


class DeliveryError(HarvesterError):
    """The collection endpoint rejected a batch or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AgentAlreadyAttachedError(HarvesterError):
    """A document host already has an agent bound to it."""


class QueueClosedError(HarvesterError):
    """Work was submitted to a task queue that no longer accepts jobs."""


__all__ = [
    "AgentAlreadyAttachedError",
    "DeliveryError",
    "HarvesterError",
    "QueueClosedError",
]
