"""Infra layer utilities (file storage, serial task queue)."""

from .storage import HashIndexStore, ShardStore
from .task_queue import SerialTaskQueue

__all__ = ["HashIndexStore", "SerialTaskQueue", "ShardStore"]
