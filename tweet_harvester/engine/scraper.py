"""Trigger handling and the sequential rescan pipeline of the agent."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Protocol

import structlog

from ..config import ScrapeTimings
from ..errors import QueueClosedError
from ..infra.task_queue import SerialTaskQueue
from .dedup import LocalDedupIndex
from .parser import RecordExtractor

NEAR_BOTTOM_MARGIN = 1000


class EntitySource(Protocol):
    """Anything able to return the current entity markup of the document."""

    async def snapshot_entities(self) -> list[str]: ...


@dataclass(frozen=True)
class ScrollMetrics:
    scroll_y: float
    viewport_height: float
    document_height: float

    @property
    def near_bottom(self) -> bool:
        return self.scroll_y + self.viewport_height >= self.document_height - NEAR_BOTTOM_MARGIN

    @classmethod
    def from_payload(cls, payload: Any) -> "ScrollMetrics | None":
        if not isinstance(payload, dict):
            return None
        try:
            return cls(
                scroll_y=float(payload.get("scrollY", 0)),
                viewport_height=float(payload.get("innerHeight", 0)),
                document_height=float(payload.get("scrollHeight", 0)),
            )
        except (TypeError, ValueError):
            return None


class ScrapeScheduler:
    """Turn change, scroll and recovery triggers into serialized rescans.

    Every rescan snapshots the entity list, cuts it into batches and puts
    all of its batches on the shared serial queue in one go, so batches of
    two rescans never interleave and ``admit`` never races with itself.
    """

    def __init__(
        self,
        source: EntitySource,
        extractor: RecordExtractor,
        index: LocalDedupIndex,
        queue: SerialTaskQueue,
        timings: ScrapeTimings | None = None,
        logger: structlog.BoundLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.extractor = extractor
        self.index = index
        self.queue = queue
        self.timings = timings or ScrapeTimings()
        self.logger = logger or structlog.get_logger("tweet_harvester.scraper")
        self._clock = clock
        self.running = False
        self._last_scroll = clock()
        self._mutation_handle: asyncio.TimerHandle | None = None
        self._throttle_handle: asyncio.TimerHandle | None = None
        self._quiet_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False
        for handle in (self._mutation_handle, self._throttle_handle, self._quiet_handle):
            if handle is not None:
                handle.cancel()
        self._mutation_handle = None
        self._throttle_handle = None
        self._quiet_handle = None

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    def notify_mutation(self, has_entities: bool) -> None:
        """Debounce subtree changes that added entity containers."""

        if not self.running or not has_entities:
            return
        if self._mutation_handle is not None:
            self._mutation_handle.cancel()
        loop = asyncio.get_running_loop()
        self._mutation_handle = loop.call_later(
            self.timings.mutation_debounce, self._on_mutation_settled
        )

    def notify_scroll(self, metrics: ScrollMetrics | None = None) -> None:
        """Throttle scroll events, then rescan once scrolling went quiet."""

        if not self.running:
            return
        self._last_scroll = self._clock()
        for handle in (self._throttle_handle, self._quiet_handle):
            if handle is not None:
                handle.cancel()
        self._quiet_handle = None
        loop = asyncio.get_running_loop()
        self._throttle_handle = loop.call_later(
            self.timings.scroll_throttle, self._after_throttle, metrics
        )

    def _on_mutation_settled(self) -> None:
        self._mutation_handle = None
        self._spawn_rescan("mutation")

    def _after_throttle(self, metrics: ScrollMetrics | None) -> None:
        self._throttle_handle = None
        if not self.running:
            return
        if metrics is not None and metrics.near_bottom:
            self.logger.debug("scroll_near_bottom", scroll_y=metrics.scroll_y)
        loop = asyncio.get_running_loop()
        self._quiet_handle = loop.call_later(self.timings.scroll_quiet, self._after_quiet)

    def _after_quiet(self) -> None:
        self._quiet_handle = None
        if self._clock() - self._last_scroll >= self.timings.scroll_quiet:
            self._spawn_rescan("scroll")

    def _spawn_rescan(self, reason: str) -> None:
        if not self.running:
            return
        task = asyncio.get_running_loop().create_task(self.rescan(reason=reason))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    async def rescan(self, reason: str = "manual") -> int:
        """Snapshot every entity and admit the new ones; returns admitted count."""

        if not self.running:
            return 0
        entities = await self._snapshot()
        self.logger.debug("rescan_started", reason=reason, entities=len(entities))
        return await self._enqueue(entities)

    async def recover(self) -> int:
        """Rescan only entities whose identity was never admitted."""

        if not self.running:
            return 0
        missed: list[str] = []
        for html in await self._snapshot():
            identity = self.extractor.identity_of(html)
            if identity and not self.index.was_processed(identity):
                missed.append(html)
        if not missed:
            return 0
        self.logger.info("recovery_rescan", entities=len(missed))
        return await self._enqueue(missed)

    async def drain(self) -> None:
        """Wait for spawned rescans and every queued batch to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.queue.join()

    async def _snapshot(self) -> list[str]:
        try:
            return await self.source.snapshot_entities()
        except Exception as exc:  # noqa: BLE001
            self.logger.error("entity_snapshot_failed", error=str(exc))
            return []

    async def _enqueue(self, entities: list[str]) -> int:
        size = self.timings.batch_size
        try:
            futures = [
                self.queue.submit(partial(self._process_batch, entities[start : start + size]))
                for start in range(0, len(entities), size)
            ]
        except QueueClosedError:
            self.logger.debug("rescan_dropped_queue_closed")
            return 0
        if not futures:
            return 0
        results = await asyncio.gather(*futures)
        return sum(results)

    async def _process_batch(self, batch: list[str]) -> int:
        admitted = 0
        for html in batch:
            record = self.extractor.extract(html)
            if record is None:
                continue
            if self.index.admit(record):
                admitted += 1
                self.logger.debug("record_queued", identity=record.identity)
        return admitted


__all__ = ["EntitySource", "ScrapeScheduler", "ScrollMetrics"]
