"""Extraction and delivery agent wiring host, scraper, index and sender."""

from __future__ import annotations

import asyncio

import structlog

from .config import AgentConfig
from .engine import BatchSender, LocalDedupIndex, PlaywrightHost, RecordExtractor, ScrapeScheduler
from .engine.dedup import IndexStats
from .infra import SerialTaskQueue
from .logging_conf import component_logger
from .scheduler import APSchedulerAdapter


class TimelineAgent:
    """Own all agent state for exactly one monitored document.

    Construction claims the host; a second agent on the same host raises
    ``AgentAlreadyAttachedError``. ``start`` wires the triggers and periodic
    jobs, ``stop`` unhooks them and lets already queued batches drain.
    """

    def __init__(
        self,
        host: PlaywrightHost,
        config: AgentConfig | None = None,
        *,
        sender: BatchSender | None = None,
        scheduler: APSchedulerAdapter | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        host.claim(self)
        self.host = host
        self.config = config or AgentConfig()
        self.logger = logger or component_logger("agent")
        self.index = LocalDedupIndex()
        self.extractor = RecordExtractor(self.config.selectors, logger=self.logger)
        self.queue = SerialTaskQueue("scrape", logger=self.logger)
        self.scraper = ScrapeScheduler(
            host,
            self.extractor,
            self.index,
            self.queue,
            self.config.timings,
            logger=self.logger,
        )
        self.sender = sender or BatchSender(self.index, self.config.sender, logger=self.logger)
        self.scheduler = scheduler or APSchedulerAdapter(logger=self.logger)
        self.running = False

    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        self.sender.active = True
        self.scraper.start()
        self.host.on_mutation = self.scraper.notify_mutation
        self.host.on_scroll = self.scraper.notify_scroll
        self.scheduler.schedule_interval("send", self.sender.tick, self.config.sender.check_interval)
        self.scheduler.schedule_interval(
            "recovery", self.scraper.recover, self.config.timings.recovery_interval
        )
        if self.config.browser.auto_scroll_interval > 0:
            self.scheduler.schedule_interval(
                "scroll", self.host.scroll_page, self.config.browser.auto_scroll_interval
            )
        self.scheduler.start()
        self.logger.info(
            "agent_started",
            endpoint=self.config.sender.endpoint,
            jobs=[job["id"] for job in self.scheduler.list_jobs()],
        )
        await self.scraper.rescan(reason="start")

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        self.scraper.stop()
        self.sender.active = False
        self.host.on_mutation = None
        self.host.on_scroll = None
        self.scheduler.shutdown()
        try:
            await self.host.disconnect_observer()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("observer_disconnect_failed", error=str(exc))
        await self.scraper.drain()
        stats = self.index.stats()
        self.logger.info(
            "agent_stopped",
            stored=stats.stored,
            pending=stats.pending,
            sent=stats.sent,
        )

    async def close(self) -> None:
        await self.stop()
        await self.sender.close()
        self.host.release(self)


async def run_agent(
    config: AgentConfig,
    stop_event: asyncio.Event,
    url: str | None = None,
) -> IndexStats:
    """Open the timeline, run the agent until ``stop_event`` is set, then tear down."""

    host = PlaywrightHost(config.browser, entity_selector=config.selectors.entity)
    agent = TimelineAgent(host, config)
    try:
        await host.open(url)
        await agent.start()
        await stop_event.wait()
    finally:
        await agent.close()
        await host.close()
    return agent.index.stats()


__all__ = ["TimelineAgent", "run_agent"]
