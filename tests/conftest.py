"""Shared fixtures: timeline markup builders, wire records and an isolated home."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from tweet_harvester.config import ConfigLocator, ConfigRepository, ScrapeTimings

ARTICLE_TEMPLATE = """
<article data-testid="tweet" tabindex="0">
  <div data-testid="User-Name">
    <a href="/{handle}" role="link"><div><span>{display_name}</span></div></a>
    <div><a href="/{handle}" role="link"><div><span>@{handle}</span></div></a></div>
    {verified}
  </div>
  <a href="/{handle}/status/{tweet_id}" role="link"><time datetime="{timestamp}">May 1</time></a>
  <div data-testid="tweetText" lang="en"><span>{text}</span></div>
  {photos}
  <div role="group">
    <button data-testid="reply"><span>{replies}</span></button>
    <button data-testid="retweet"><span>{reshares}</span></button>
    <button data-testid="like"><span>{likes}</span></button>
    <a href="/{handle}/status/{tweet_id}/analytics" aria-label="{views} views. View post analytics"></a>
  </div>
</article>
"""


@pytest.fixture
def make_article() -> Callable[..., str]:
    def _builder(tweet_id: str = "42", **overrides: Any) -> str:
        values: dict[str, Any] = {
            "tweet_id": tweet_id,
            "handle": "alice",
            "display_name": "Alice Example",
            "verified": '<svg data-testid="icon-verified"></svg>',
            "timestamp": "2024-05-01T12:30:00.000Z",
            "text": f"Post number {tweet_id}",
            "photos": "",
            "replies": "12",
            "reshares": "1.5K",
            "likes": "2M",
            "views": "12,345",
        }
        values.update(overrides)
        return ARTICLE_TEMPLATE.format(**values)

    return _builder


@pytest.fixture
def make_wire_record() -> Callable[..., dict[str, Any]]:
    def _builder(tweet_id: str = "1", **overrides: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "tweetId": tweet_id,
            "timestamp": "2024-05-01T12:00:00.000Z",
            "name": "Alice Example",
            "username": "@alice",
            "verified_user": "no",
            "text": f"Status update {tweet_id}",
            "comments": "1",
            "retweets": "2",
            "likes": "3",
            "views": "40",
            "images": [],
            "video": [],
        }
        record.update(overrides)
        return record

    return _builder


@pytest.fixture
def fast_timings() -> ScrapeTimings:
    return ScrapeTimings(
        mutation_debounce=0.01,
        scroll_throttle=0.01,
        scroll_quiet=0.01,
        recovery_interval=1.0,
        batch_size=2,
    )


@pytest.fixture
def harvester_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("TWEET_HARVESTER_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def temp_config_repository(harvester_home: Path) -> ConfigRepository:
    return ConfigRepository(ConfigLocator(project_root=harvester_home))
