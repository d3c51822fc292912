"""Pydantic models used across the harvester configuration flow."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class ExtractorSelectors(BaseModel):
    """CSS selectors used to pull fields out of one timeline entity."""

    entity: str = "article"
    status_link: str = 'a[href*="/status/"]'
    text: str = '[data-testid="tweetText"]'
    user_name_block: str = '[data-testid="User-Name"]'
    display_name: str = 'a[href^="/"] span'
    handle: str = 'a[href^="/"][role="link"] > div > span'
    verified_icon: str = '[data-testid="icon-verified"]'
    timestamp: str = "time"
    photo: str = '[data-testid="tweetPhoto"] img'
    video_source: str = "video source"
    reply: str = '[data-testid="reply"]'
    reshare: str = '[data-testid="retweet"]'
    like: str = '[data-testid="like"]'
    views_link: str = 'a[href*="/analytics"]'

    @model_validator(mode="after")
    def _validate_entity(self) -> "ExtractorSelectors":
        if not self.entity.strip():
            raise ValueError("entity selector cannot be empty")
        if not self.status_link.strip():
            raise ValueError("status_link selector cannot be empty")
        return self


class ScrapeTimings(BaseModel):
    """Timer settings for the scrape triggers, all in seconds."""

    mutation_debounce: float = 0.2
    scroll_throttle: float = 0.5
    scroll_quiet: float = 0.5
    recovery_interval: float = 30.0
    batch_size: int = 5

    @model_validator(mode="after")
    def _validate_positive(self) -> "ScrapeTimings":
        for name in ("mutation_debounce", "scroll_throttle", "scroll_quiet"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.recovery_interval <= 0:
            raise ValueError("recovery_interval must be > 0")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        return self


class SenderConfig(BaseModel):
    """Delivery settings for the batch sender."""

    endpoint: str = "http://localhost:3000/store-data"
    payload_format: Literal["records", "envelope"] = "records"
    check_interval: float = 1.0
    min_send_interval: float = 2.0
    max_attempts: int = 3
    retry_backoff: float = 1.0
    request_timeout: float = 15.0

    @model_validator(mode="after")
    def _validate_limits(self) -> "SenderConfig":
        if self.check_interval <= 0:
            raise ValueError("check_interval must be > 0")
        if self.min_send_interval < 0:
            raise ValueError("min_send_interval must be >= 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff must be >= 0")
        return self


class BrowserConfig(BaseModel):
    """Playwright settings for the page the agent watches."""

    target_url: str = "https://x.com/home"
    headless: bool = False
    viewport_size: tuple[int, int] = (1280, 900)
    user_agent: str | None = None
    # Playwright storage state (cookies/localStorage) captured from a logged-in session
    storage_state: Path | None = None
    navigation_timeout: int = 30000
    # Scroll the page automatically every N seconds; 0 leaves scrolling to the user
    auto_scroll_interval: float = 0.0
    auto_scroll_pixels: int = 1500

    @field_validator("storage_state", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value)

    @field_validator("viewport_size", mode="before")
    @classmethod
    def _coerce_viewport(cls, value: Any) -> tuple[int, int]:
        if isinstance(value, (list, tuple)) and len(value) == 2:
            width, height = int(value[0]), int(value[1])
            if width <= 0 or height <= 0:
                raise ValueError("viewport_size values must be positive")
            return (width, height)
        raise ValueError("viewport_size expects [width, height]")

    @model_validator(mode="after")
    def _validate_scroll(self) -> "BrowserConfig":
        if self.auto_scroll_interval < 0:
            raise ValueError("auto_scroll_interval must be >= 0")
        return self


class AgentConfig(BaseModel):
    """Everything the extraction and delivery agent needs."""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    selectors: ExtractorSelectors = Field(default_factory=ExtractorSelectors)
    timings: ScrapeTimings = Field(default_factory=ScrapeTimings)
    sender: SenderConfig = Field(default_factory=SenderConfig)


DEFAULT_ALLOWED_ORIGINS = [
    "chrome-extension://*",
    "https://twitter.com",
    "https://x.com",
    "http://localhost:3000",
]


class ServerConfig(BaseModel):
    """Ingestion service settings."""

    host: str = "127.0.0.1"
    port: int = 3000
    data_dir: Path = Field(default=Path("data/tweets"))
    max_records_per_request: int = 100
    default_page_limit: int = 50
    allowed_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    # Matched as whole words; see RecordValidator
    ad_markers: list[str] = Field(default_factory=lambda: ["ad", "sponsored", "promoted"])

    @field_validator("data_dir", mode="before")
    @classmethod
    def _coerce_dir(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _validate_limits(self) -> "ServerConfig":
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if self.max_records_per_request < 1:
            raise ValueError("max_records_per_request must be >= 1")
        if self.default_page_limit < 1:
            raise ValueError("default_page_limit must be >= 1")
        return self

    def resolved_data_dir(self, base_dir: Path) -> Path:
        """Return the shard directory relative to the project root."""

        if not self.data_dir.is_absolute():
            return (base_dir / self.data_dir).resolve()
        return self.data_dir


class GlobalConfig(BaseModel):
    """Top level configuration document."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


__all__ = [
    "AgentConfig",
    "BrowserConfig",
    "DEFAULT_ALLOWED_ORIGINS",
    "ExtractorSelectors",
    "GlobalConfig",
    "ScrapeTimings",
    "SenderConfig",
    "ServerConfig",
]
