"""Rate-limited batch delivery of pending records."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Iterable

import httpx
import structlog

from ..config import SenderConfig
from ..errors import DeliveryError
from .dedup import LocalDedupIndex
from .parser import Record


def _to_int(value: Any) -> int:
    try:
        return int(Decimal(str(value or 0)))
    except (InvalidOperation, ValueError):
        return 0


def _utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def build_envelope(records: Iterable[Record]) -> dict[str, list[dict[str, Any]]]:
    """Group records per author into the users/tweets envelope."""

    users: dict[str, dict[str, Any]] = {}
    for record in records:
        handle = record.author_handle
        entry = users.get(handle)
        if entry is None:
            entry = {
                "username": handle,
                "screen_name": record.author_display_name or handle,
                "is_blue_verified": "yes" if record.verified else "no",
                "user_id": None,
                "profile_image_url": None,
                "profile_banner_url": None,
                "users_url": None,
                "bio": None,
                "description": None,
                "location": None,
                "following_count": None,
                "followers_count": None,
                "tweets_count": None,
                "joined": None,
                "tweets": [],
            }
            users[handle] = entry
        tweet: dict[str, Any] = {
            # Identifiers stay strings; large ids lose precision as numbers
            "tweet_id": str(record.identity),
            "user_id": None,
            "content": record.body_text or "",
            "created_at": record.created_at or _utc_now_iso(),
            "retweet_count": _to_int(record.metrics.reshares),
            "like_count": _to_int(record.metrics.likes),
            "reply_count": _to_int(record.metrics.replies),
            "quote_count": 0,
            "view_count": _to_int(record.metrics.views),
            "location": None,
            "lang": None,
        }
        media = record.media_urls
        if media:
            tweet["media_url"] = media[0]
        entry["tweets"].append(tweet)
    return {"users_tweets": list(users.values())}


class BatchSender:
    """Drain the pending store to the collection endpoint with bounded retries."""

    def __init__(
        self,
        index: LocalDedupIndex,
        config: SenderConfig | None = None,
        client: httpx.AsyncClient | None = None,
        logger: structlog.BoundLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.index = index
        self.config = config or SenderConfig()
        self.logger = logger or structlog.get_logger("tweet_harvester.sender")
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._sleep = sleep
        self.last_send = clock()
        self.active = True
        self._sending = False

    def due(self) -> bool:
        if not self.index.has_unsent():
            return False
        return self._clock() - self.last_send >= self.config.min_send_interval

    async def tick(self) -> int:
        """Periodic entry point; sends only when records wait and the interval passed."""

        if not self.due():
            return 0
        return await self.send_pending()

    async def send_pending(self) -> int:
        if self._sending or not self.active:
            return 0
        self._sending = True
        try:
            records = self.index.snapshot()
            if not records:
                return 0
            identities = [record.identity for record in records]
            payload = self.build_payload(records)
            try:
                await self._deliver(payload)
            except Exception as exc:  # noqa: BLE001
                self.logger.error("batch_delivery_failed", count=len(records), error=str(exc))
                self.index.release(identities)
                return 0
            self.index.mark_sent(identities)
            self.last_send = self._clock()
            self.logger.info("batch_delivered", count=len(records), endpoint=self.config.endpoint)
            return len(records)
        finally:
            self._sending = False

    def build_payload(self, records: list[Record]) -> Any:
        if self.config.payload_format == "envelope":
            return build_envelope(records)
        return [record.to_wire() for record in records]

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._client

    async def _deliver(self, payload: Any) -> httpx.Response:
        client = self._ensure_client()
        attempts = self.config.max_attempts
        attempt = 1
        while True:
            try:
                response = await client.post(self.config.endpoint, json=payload)
                if not response.is_success:
                    raise DeliveryError(
                        f"API responded with status: {response.status_code}, body: {response.text}",
                        status_code=response.status_code,
                    )
                return response
            except (httpx.HTTPError, DeliveryError) as exc:
                self.logger.warning(
                    "delivery_attempt_failed",
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(exc),
                )
                if attempt >= attempts:
                    raise
            attempt += 1
            await self._sleep(self.config.retry_backoff)


__all__ = ["BatchSender", "build_envelope"]
