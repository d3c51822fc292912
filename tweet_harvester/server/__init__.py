"""Ingestion service: serialized dedup jobs, shard storage and read API."""

from .api import create_app, run_server
from .ingestion import IngestionResult, IngestionService
from .reader import ShardReader, TweetPage
from .validation import RecordValidator, content_hash, present_record

__all__ = [
    "IngestionResult",
    "IngestionService",
    "RecordValidator",
    "ShardReader",
    "TweetPage",
    "content_hash",
    "create_app",
    "present_record",
    "run_server",
]
