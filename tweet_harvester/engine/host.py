"""Playwright page adapter exposing the monitored document to the agent."""

from __future__ import annotations

import json
from typing import Any, Callable

import structlog

from ..config import BrowserConfig
from ..errors import AgentAlreadyAttachedError
from .scraper import ScrollMetrics

BINDING_NAME = "__harvesterNotify"

# Installed before any page script runs; reports entity additions and scrolls
_OBSERVER_SCRIPT = """
(() => {
  const selector = %(selector)s;
  const notify = (kind, payload) => {
    try { window.%(binding)s(kind, payload); } catch (error) { /* binding not ready */ }
  };
  const install = () => {
    if (window.__harvesterObserver) return;
    const observer = new MutationObserver((mutations) => {
      const relevant = mutations.some((mutation) =>
        Array.from(mutation.addedNodes).some((node) =>
          node.nodeType === 1 && (node.matches(selector) || node.querySelector(selector))
        )
      );
      if (relevant) notify("mutation", { entities: true });
    });
    observer.observe(document.body, { childList: true, subtree: true });
    window.__harvesterObserver = observer;
    window.addEventListener("scroll", () => {
      notify("scroll", {
        scrollY: window.scrollY,
        innerHeight: window.innerHeight,
        scrollHeight: document.documentElement.scrollHeight,
      });
    }, { passive: true });
  };
  if (document.body) install();
  else document.addEventListener("DOMContentLoaded", install);
})();
"""

_DISCONNECT_SCRIPT = """
() => {
  if (window.__harvesterObserver) {
    window.__harvesterObserver.disconnect();
    window.__harvesterObserver = null;
  }
}
"""

MutationListener = Callable[[bool], None]
ScrollListener = Callable[[ScrollMetrics | None], None]


class PlaywrightHost:
    """Own the browser page and relay its notifications to listeners."""

    def __init__(
        self,
        config: BrowserConfig | None = None,
        entity_selector: str = "article",
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config or BrowserConfig()
        self.entity_selector = entity_selector
        self.logger = logger or structlog.get_logger("tweet_harvester.host")
        self.on_mutation: MutationListener | None = None
        self.on_scroll: ScrollListener | None = None
        self._owner: object | None = None
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def claim(self, owner: object) -> None:
        """Bind one agent to this document; a second agent is refused."""

        if self._owner is not None and self._owner is not owner:
            raise AgentAlreadyAttachedError("An agent is already attached to this document")
        self._owner = owner

    def release(self, owner: object) -> None:
        if self._owner is owner:
            self._owner = None

    async def open(self, url: str | None = None) -> None:
        try:
            from playwright.async_api import async_playwright
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "The agent requires the 'playwright' package and an installed Chromium."
            ) from exc

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.config.headless)
        context_kwargs: dict[str, Any] = {
            "viewport": {
                "width": self.config.viewport_size[0],
                "height": self.config.viewport_size[1],
            },
        }
        if self.config.user_agent:
            context_kwargs["user_agent"] = self.config.user_agent
        if self.config.storage_state is not None and self.config.storage_state.exists():
            context_kwargs["storage_state"] = str(self.config.storage_state)
        self._context = await self._browser.new_context(**context_kwargs)
        await self._context.expose_binding(BINDING_NAME, self._on_binding)
        await self._context.add_init_script(
            _OBSERVER_SCRIPT
            % {"selector": json.dumps(self.entity_selector), "binding": BINDING_NAME}
        )
        self._page = await self._context.new_page()
        self._page.set_default_navigation_timeout(self.config.navigation_timeout)
        target = url or self.config.target_url
        await self._page.goto(target, wait_until="domcontentloaded")
        self.logger.info("document_opened", url=target)

    async def snapshot_entities(self) -> list[str]:
        if self._page is None:
            return []
        return await self._page.eval_on_selector_all(
            self.entity_selector, "nodes => nodes.map(node => node.outerHTML)"
        )

    async def scroll_page(self, pixels: int | None = None) -> None:
        if self._page is None:
            return
        await self._page.mouse.wheel(0, pixels or self.config.auto_scroll_pixels)

    async def disconnect_observer(self) -> None:
        if self._page is None or self._page.is_closed():
            return
        await self._page.evaluate(_DISCONNECT_SCRIPT)

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self._page = None

    def _on_binding(self, _source: Any, kind: str, payload: Any = None) -> None:
        if kind == "mutation" and self.on_mutation is not None:
            has_entities = bool(payload.get("entities")) if isinstance(payload, dict) else True
            self.on_mutation(has_entities)
        elif kind == "scroll" and self.on_scroll is not None:
            self.on_scroll(ScrollMetrics.from_payload(payload))


__all__ = ["BINDING_NAME", "PlaywrightHost"]
