"""Record validation, content hashing and presentation for the ingestion service."""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Iterable

import structlog

# Matched as whole words, case-insensitive: "ad" does not hit "adoption" or "shadow"
DEFAULT_AD_MARKERS = ("ad", "sponsored", "promoted")

_PRESENTATION_DEFAULTS = {
    "name": "Unknown User",
    "username": "@unknown",
    "verified_user": "no",
    "text": "No Text",
    "comments": "0",
    "retweets": "0",
    "likes": "0",
    "views": "0",
}


class RecordValidator:
    """Content policy shared by the ingestion job and the shard reader."""

    def __init__(
        self,
        ad_markers: Iterable[str] = DEFAULT_AD_MARKERS,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        markers = [marker.strip() for marker in ad_markers if marker and marker.strip()]
        self._ad_pattern = (
            re.compile(r"\b(?:" + "|".join(re.escape(m) for m in markers) + r")\b", re.IGNORECASE)
            if markers
            else None
        )
        self.logger = logger or structlog.get_logger("tweet_harvester.validation")

    def is_valid(self, record: Any) -> bool:
        if not isinstance(record, dict) or not record.get("tweetId"):
            self.logger.debug("record_missing_id")
            return False
        text = record.get("text")
        if self._ad_pattern is not None and isinstance(text, str) and self._ad_pattern.search(text):
            self.logger.info("record_rejected_advertising", tweet_id=str(record.get("tweetId")))
            return False
        return True

    @staticmethod
    def normalize(record: dict[str, Any]) -> dict[str, Any]:
        """Copy of the record with list-typed media fields."""

        normalized = dict(record)
        for key in ("images", "video"):
            if not isinstance(normalized.get(key), list):
                normalized[key] = []
        return normalized


def content_hash(record: dict[str, Any]) -> str | None:
    """md5 over identity, stripped text and timestamp; None without id or text."""

    tweet_id = record.get("tweetId")
    text = record.get("text")
    if not tweet_id or not isinstance(text, str) or not text:
        return None
    payload: dict[str, Any] = {"tweetId": tweet_id, "text": text.strip()}
    if "timestamp" in record:
        payload["timestamp"] = record["timestamp"]
    digest_input = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return hashlib.md5(digest_input.encode("utf-8")).hexdigest()


def present_record(record: dict[str, Any]) -> dict[str, Any]:
    """Public shape of a stored record with defaults for missing fields."""

    presented: dict[str, Any] = {
        "tweetId": record.get("tweetId"),
        "timestamp": record.get("timestamp"),
    }
    for key, default in _PRESENTATION_DEFAULTS.items():
        presented[key] = record.get(key) or default
    presented["images"] = record.get("images") or []
    presented["video"] = record.get("video") or []
    return presented


__all__ = ["DEFAULT_AD_MARKERS", "RecordValidator", "content_hash", "present_record"]
