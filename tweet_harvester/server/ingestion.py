"""Serialized ingestion jobs: validate, deduplicate by content hash, persist."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import structlog

from ..config import ServerConfig
from ..infra import HashIndexStore, SerialTaskQueue, ShardStore
from .reader import ShardReader, TweetPage
from .validation import RecordValidator, content_hash

MESSAGE_STORED = "Tweets stored successfully"
MESSAGE_NOTHING_NEW = "No new unique tweets"


@dataclass
class IngestionResult:
    message: str
    count: int
    filename: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message, "count": self.count}
        if self.filename is not None:
            payload["filename"] = self.filename
        return payload


class IngestionService:
    """Own the ingestion queue and everything it is allowed to touch.

    The hash index and the shard directory are only read or written from
    jobs running on ``queue``; reads go through the same queue so a page
    never observes half of a job.
    """

    def __init__(
        self,
        data_dir: Path,
        max_records: int = 100,
        validator: RecordValidator | None = None,
        clock: Callable[[], float] = time.time,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.data_dir = data_dir
        self.max_records = max_records
        self.logger = logger or structlog.get_logger("tweet_harvester.ingestion")
        self.validator = validator or RecordValidator(logger=self.logger)
        self.index_store = HashIndexStore(data_dir, logger=self.logger)
        self.shards = ShardStore(data_dir, clock=clock, logger=self.logger)
        self.reader = ShardReader(self.shards, self.validator, logger=self.logger)
        self.queue = SerialTaskQueue("ingestion", logger=self.logger)

    @classmethod
    def from_config(
        cls,
        config: ServerConfig,
        base_dir: Path,
        logger: structlog.BoundLogger | None = None,
    ) -> "IngestionService":
        return cls(
            config.resolved_data_dir(base_dir),
            max_records=config.max_records_per_request,
            validator=RecordValidator(config.ad_markers, logger=logger),
            logger=logger,
        )

    async def submit(self, records: list[Any]) -> IngestionResult:
        """Queue one inbound batch and wait for its job to finish."""

        return await self.queue.submit(lambda: asyncio.to_thread(self.process_batch, records))

    async def read_page(self, page: int, limit: int) -> TweetPage:
        return await self.queue.submit(lambda: asyncio.to_thread(self.reader.page, page, limit))

    async def close(self) -> None:
        await self.queue.close()

    def process_batch(self, records: list[Any]) -> IngestionResult:
        """Job body; runs with the queue's worker waiting on it."""

        self.index_store.ensure_directory()
        trimmed = records[: self.max_records]
        if len(records) > len(trimmed):
            self.logger.info("batch_trimmed", received=len(records), kept=len(trimmed))
        valid = [self.validator.normalize(record) for record in trimmed if self.validator.is_valid(record)]

        known = self.index_store.load()
        seen = set(known)
        fresh: list[dict[str, Any]] = []
        for record in valid:
            digest = content_hash(record)
            if digest is None:
                self.logger.debug("record_unhashable", tweet_id=str(record.get("tweetId")))
                continue
            if digest in seen:
                continue
            seen.add(digest)
            known.append(digest)
            fresh.append(record)

        if not fresh:
            self.logger.info("batch_without_new_records", received=len(trimmed), valid=len(valid))
            return IngestionResult(MESSAGE_NOTHING_NEW, 0)

        # The index never lists a hash whose record is not already in a shard
        path = self.shards.write(fresh)
        self.index_store.save(known)
        self.logger.info("batch_stored", count=len(fresh), filename=path.name)
        return IngestionResult(MESSAGE_STORED, len(fresh), path.name)


__all__ = ["IngestionResult", "IngestionService", "MESSAGE_NOTHING_NEW", "MESSAGE_STORED"]
