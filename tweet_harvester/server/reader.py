"""Merged, deduplicated and paginated view over every shard file."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from ..infra.storage import ShardStore
from .validation import RecordValidator, present_record


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _newest_first_key(record: dict[str, Any]) -> tuple[int, float]:
    parsed = _parse_timestamp(record.get("timestamp"))
    if parsed is None:
        return (0, 0.0)
    return (1, parsed.timestamp())


@dataclass
class TweetPage:
    total: int
    page: int
    limit: int
    tweets: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class ShardReader:
    """Fold all shards into one view keyed by identity, newest first."""

    def __init__(
        self,
        shards: ShardStore,
        validator: RecordValidator,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.shards = shards
        self.validator = validator
        self.logger = logger or structlog.get_logger("tweet_harvester.reader")

    def collect(self) -> list[dict[str, Any]]:
        unique: dict[str, dict[str, Any]] = {}
        for _path, records in self.shards.iter_shards():
            for record in records:
                if not self.validator.is_valid(record):
                    continue
                key = str(record["tweetId"])
                if key not in unique:
                    unique[key] = self.validator.normalize(record)
        # Records without a usable timestamp sort after every dated record
        ordered = sorted(unique.values(), key=_newest_first_key, reverse=True)
        return [present_record(record) for record in ordered]

    def page(self, page: int = 1, limit: int = 50) -> TweetPage:
        page = max(page, 1)
        limit = max(limit, 1)
        tweets = self.collect()
        start = (page - 1) * limit
        return TweetPage(total=len(tweets), page=page, limit=limit, tweets=tweets[start : start + limit])


__all__ = ["ShardReader", "TweetPage"]
