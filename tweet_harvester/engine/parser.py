"""DOM parsing helpers turning timeline entities into records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog
from selectolax.parser import HTMLParser, Node

from ..config import ExtractorSelectors

_STATUS_PATTERN = re.compile(r"status/(\d+)")
_METRIC_PATTERN = re.compile(r"(\d+(?:\.\d+)?)([KMB](?![A-Za-z]))?")
_IMAGE_SIZE_PATTERN = re.compile(r"&name=.+$")
_VIEWS_LABEL_SUFFIX = re.compile(r"\.? View post analytics")
_MULTIPLIERS = {"K": 1_000, "M": 1_000_000, "B": 1_000_000_000}

UNKNOWN_DISPLAY_NAME = "Unknown User"
UNKNOWN_HANDLE = "@unknown"


def parse_engagement_number(text: str | None) -> str:
    """Normalise an engagement counter such as ``"12.3K"`` into ``"12300"``."""

    if not text:
        return "0"
    match = _METRIC_PATTERN.search(text.replace(",", ""))
    if not match:
        return "0"
    number, suffix = match.groups()
    try:
        value = Decimal(number)
    except InvalidOperation:
        return "0"
    if suffix:
        value *= _MULTIPLIERS[suffix]
    return str(int(value))


def to_iso_timestamp(value: str | None) -> str | None:
    """Return a UTC ISO-8601 timestamp with millisecond precision, or None."""

    if not value:
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
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


@dataclass(frozen=True, slots=True)
class EngagementMetrics:
    """Counters shown under an entity, kept as decimal strings."""

    replies: str = "0"
    reshares: str = "0"
    likes: str = "0"
    views: str = "0"


@dataclass(frozen=True, slots=True)
class Record:
    """Structured representation of one timeline entity."""

    identity: str
    author_handle: str = UNKNOWN_HANDLE
    author_display_name: str = UNKNOWN_DISPLAY_NAME
    verified: bool = False
    body_text: str = ""
    created_at: str | None = None
    metrics: EngagementMetrics = field(default_factory=EngagementMetrics)
    images: tuple[str, ...] = ()
    videos: tuple[str, ...] = ()

    @property
    def media_urls(self) -> list[str]:
        return [*self.images, *self.videos]

    @property
    def has_media(self) -> bool:
        return bool(self.images or self.videos)

    def to_wire(self) -> dict[str, Any]:
        """Flat record shape accepted by the ingestion service."""

        return {
            "tweetId": self.identity,
            "timestamp": self.created_at,
            "created_at": self.created_at,
            "name": self.author_display_name,
            "username": self.author_handle,
            "verified_user": "yes" if self.verified else "no",
            "text": self.body_text,
            "comments": self.metrics.replies,
            "retweets": self.metrics.reshares,
            "likes": self.metrics.likes,
            "views": self.metrics.views,
            "images": list(self.images),
            "hasImages": bool(self.images),
            "video": list(self.videos),
        }


class RecordExtractor:
    """Parse entity markup according to the configured selectors."""

    def __init__(
        self,
        selectors: ExtractorSelectors | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.selectors = selectors or ExtractorSelectors()
        self.logger = logger or structlog.get_logger("tweet_harvester.extractor")

    def split_entities(self, html: str) -> list[str]:
        """Return the outer HTML of every entity container found in a page."""

        parser = HTMLParser(html)
        return [node.html or "" for node in parser.css(self.selectors.entity)]

    def extract_page(self, html: str) -> list[Record]:
        records: list[Record] = []
        for fragment in self.split_entities(html):
            record = self.extract(fragment)
            if record is not None:
                records.append(record)
        return records

    def identity_of(self, html: str) -> str | None:
        try:
            return self._identity(HTMLParser(html))
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("identity_extraction_failed", error=str(exc))
            return None

    def extract(self, html: str) -> Record | None:
        """Build a record from one entity; None when it is not extractable yet."""

        try:
            tree = HTMLParser(html)
            identity = self._identity(tree)
            if not identity:
                return None
            display_name, handle = self._author(tree)
            text_node = tree.css_first(self.selectors.text)
            time_node = tree.css_first(self.selectors.timestamp)
            return Record(
                identity=identity,
                author_handle=handle,
                author_display_name=display_name,
                verified=tree.css_first(self.selectors.verified_icon) is not None,
                body_text=text_node.text(strip=False).strip() if text_node else "",
                created_at=to_iso_timestamp(
                    time_node.attributes.get("datetime") if time_node else None
                ),
                metrics=self._metrics(tree),
                images=tuple(self._images(tree)),
                videos=tuple(self._videos(tree)),
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("entity_extraction_failed", error=str(exc))
            return None

    # ------------------------------------------------------------------
    def _identity(self, tree: HTMLParser) -> str | None:
        for link in tree.css(self.selectors.status_link):
            href = link.attributes.get("href") or ""
            match = _STATUS_PATTERN.search(href)
            if match:
                return match.group(1)
        return None

    def _author(self, tree: HTMLParser) -> tuple[str, str]:
        user_block = tree.css_first(self.selectors.user_name_block)
        block: HTMLParser | Node = user_block or tree
        display_name = self._first_text(block, self.selectors.display_name)
        handle = None
        # Only User-Name spans are scanned for a bare @handle
        if user_block is not None:
            for span in user_block.css("span"):
                value = span.text(strip=True)
                if value.startswith("@") and len(value) > 1:
                    handle = value
                    break
        if handle is None:
            handle = self._first_text(block, self.selectors.handle)
        return display_name or UNKNOWN_DISPLAY_NAME, handle or UNKNOWN_HANDLE

    @staticmethod
    def _first_text(root: HTMLParser | Node, selector: str) -> str | None:
        for node in root.css(selector):
            value = node.text(strip=True)
            if value:
                return value
        return None

    def _images(self, tree: HTMLParser) -> list[str]:
        urls: list[str] = []
        for img in tree.css(self.selectors.photo):
            src = img.attributes.get("src") or ""
            if not src or "emoji" in src:
                continue
            urls.append(_IMAGE_SIZE_PATTERN.sub("&name=orig", src))
        return urls

    def _videos(self, tree: HTMLParser) -> list[str]:
        sources = (node.attributes.get("src") or "" for node in tree.css(self.selectors.video_source))
        return [src for src in sources if src.strip()]

    def _metrics(self, tree: HTMLParser) -> EngagementMetrics:
        def counter(selector: str) -> str:
            node = tree.css_first(selector)
            return parse_engagement_number(node.text(strip=True)) if node else "0"

        views = "0"
        views_node = tree.css_first(self.selectors.views_link)
        if views_node is not None:
            label = views_node.attributes.get("aria-label") or ""
            views = parse_engagement_number(_VIEWS_LABEL_SUFFIX.sub("", label))
        return EngagementMetrics(
            replies=counter(self.selectors.reply),
            reshares=counter(self.selectors.reshare),
            likes=counter(self.selectors.like),
            views=views,
        )


__all__ = [
    "EngagementMetrics",
    "Record",
    "RecordExtractor",
    "parse_engagement_number",
    "to_iso_timestamp",
]
