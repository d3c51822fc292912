"""Agent engine: extract → admit → deliver."""

from .dedup import LocalDedupIndex
from .host import PlaywrightHost
from .parser import EngagementMetrics, Record, RecordExtractor, parse_engagement_number
from .scraper import ScrapeScheduler, ScrollMetrics
from .sender import BatchSender, build_envelope

__all__ = [
    "BatchSender",
    "EngagementMetrics",
    "LocalDedupIndex",
    "PlaywrightHost",
    "Record",
    "RecordExtractor",
    "ScrapeScheduler",
    "ScrollMetrics",
    "build_envelope",
    "parse_engagement_number",
]
