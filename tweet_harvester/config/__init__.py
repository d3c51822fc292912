"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    DEFAULT_ALLOWED_ORIGINS,
    AgentConfig,
    BrowserConfig,
    ExtractorSelectors,
    GlobalConfig,
    ScrapeTimings,
    SenderConfig,
    ServerConfig,
)

__all__ = [
    "AgentConfig",
    "BrowserConfig",
    "ConfigLocator",
    "ConfigRepository",
    "DEFAULT_ALLOWED_ORIGINS",
    "ExtractorSelectors",
    "GlobalConfig",
    "ScrapeTimings",
    "SenderConfig",
    "ServerConfig",
]
