"""Browser capability provider built on Playwright's async API."""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .errors import BrowserError

LOGGER = logging.getLogger(__name__)

DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000
DEFAULT_ELEMENT_TIMEOUT_MS = 5_000
MAX_EXTRACTED_TEXT_CHARS = 20_000
MAX_EXTRACTED_LINKS = 50

ContextFactory = Callable[[], Awaitable[Any]]

_INTERACTIVE_ELEMENTS_SCRIPT = """
() => {
  const found = [];
  const groups = [
    ['a', 'link'],
    ['button', 'button'],
    ['input[type="text"]', 'text input'],
    ['input[type="password"]', 'password input'],
    ['input[type="email"]', 'email input'],
    ['input[type="checkbox"]', 'checkbox'],
    ['input[type="radio"]', 'radio button'],
    ['input[type="submit"]', 'submit button'],
    ['textarea', 'textarea'],
    ['select', 'dropdown'],
  ];
  for (const [selector, type] of groups) {
    for (const el of document.querySelectorAll(selector)) {
      const rect = el.getBoundingClientRect();
      const style = window.getComputedStyle(el);
      if (rect.width <= 0 || rect.height <= 0) continue;
      if (style.visibility === 'hidden' || style.display === 'none') continue;
      const text = (el.innerText || el.value || el.placeholder || '').trim().substring(0, 50);
      found.push({
        index: found.length,
        type,
        text,
        tag: el.tagName.toLowerCase(),
        id: el.id || '',
        className: typeof el.className === 'string' ? el.className : '',
      });
    }
  }
  return found;
}
"""

_PAGE_SUMMARY_SCRIPT = """
(maxLinks) => {
  const headings = Array.from(document.querySelectorAll('h1, h2, h3'))
    .map((el) => el.innerText.trim())
    .filter(Boolean);
  const links = Array.from(document.querySelectorAll('a[href]'))
    .slice(0, maxLinks)
    .map((el) => ({ text: el.innerText.trim().substring(0, 80), href: el.href }));
  const text = document.body ? document.body.innerText : '';
  return { headings, links, text };
}
"""


class BrowserProvider:
    """Drives one browser context with numbered tabs.

    The browser starts lazily on the first directive. Tab ids are never reused
    within a provider's lifetime, so an id the model saw earlier cannot point
    at a different page later.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        screenshot_dir: str | Path | None = None,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        element_timeout_ms: int = DEFAULT_ELEMENT_TIMEOUT_MS,
        context_factory: ContextFactory | None = None,
    ) -> None:
        self.headless = headless
        self.screenshot_dir = Path(
            screenshot_dir or Path(tempfile.gettempdir()) / "llmcp-browser-screenshots"
        )
        self.navigation_timeout_ms = navigation_timeout_ms
        self.element_timeout_ms = element_timeout_ms
        self._context_factory = context_factory or self._launch_chromium
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._tabs: dict[int, Any] = {}
        self._active_tab_id: int | None = None
        self._next_tab_id = 0

    @property
    def initialized(self) -> bool:
        return self._context is not None

    async def navigate(self, url: str) -> str:
        page = await self._active_page()
        target = _with_scheme(url.strip())
        try:
            await page.goto(
                target, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms
            )
            title = await page.title()
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to navigate to {target}: {exc}") from exc
        LOGGER.info("browser_navigated", extra={"url": target, "tab_id": self._active_tab_id})
        return f"Successfully navigated to {target} (Title: {title})"

    async def click(self, selector: str) -> str:
        page = await self._active_page()
        try:
            await page.wait_for_selector(selector, timeout=self.element_timeout_ms)
            await page.click(selector)
            return f"Successfully clicked element with CSS selector: {selector}"
        except PlaywrightError as css_error:
            LOGGER.debug("browser_click_css_failed", extra={"selector": selector})
            first_error = css_error
        try:
            await page.get_by_text(selector).first.click(timeout=self.element_timeout_ms)
            return f"Successfully clicked element with text: {selector}"
        except PlaywrightError:
            LOGGER.debug("browser_click_text_failed", extra={"selector": selector})
        try:
            await page.click(f"xpath={selector}", timeout=self.element_timeout_ms)
            return f"Successfully clicked element with XPath: {selector}"
        except PlaywrightError:
            raise BrowserError(
                f'Failed to click element "{selector}": {first_error}'
            ) from first_error

    async def type_text(self, selector: str, text: str) -> str:
        page = await self._active_page()
        try:
            await page.wait_for_selector(selector, timeout=self.element_timeout_ms)
            await page.fill(selector, text)
        except PlaywrightError as exc:
            raise BrowserError(f'Failed to type into "{selector}": {exc}') from exc
        return f'Successfully typed {len(text)} characters into "{selector}"'

    async def extract(self, goal: str = "") -> dict[str, object]:
        page = await self._active_page()
        if goal and _looks_like_selector(goal):
            matched = await self._extract_selector(page, goal)
            if matched is not None:
                return matched
        try:
            title = await page.title()
            summary = await page.evaluate(_PAGE_SUMMARY_SCRIPT, MAX_EXTRACTED_LINKS)
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to extract content: {exc}") from exc

        text = str(summary.get("text", ""))
        result: dict[str, object] = {
            "title": title,
            "url": page.url,
            "headings": summary.get("headings", []),
            "links": summary.get("links", []),
            "content": text[:MAX_EXTRACTED_TEXT_CHARS],
        }
        if goal:
            result["goal"] = goal
        if len(text) > MAX_EXTRACTED_TEXT_CHARS:
            result["truncated"] = True
        return result

    async def _extract_selector(self, page: Any, selector: str) -> dict[str, object] | None:
        """Collect the text of elements matching ``selector``; ``None`` when nothing matches."""
        try:
            elements = await page.query_selector_all(selector)
            texts = [((await element.text_content()) or "").strip() for element in elements]
            title = await page.title()
        except PlaywrightError:
            LOGGER.debug("browser_extract_selector_failed", extra={"selector": selector})
            return None
        if not elements:
            return None
        return {
            "title": title,
            "url": page.url,
            "selector": selector,
            "matches": len(texts),
            "content": "\n".join(text for text in texts if text),
        }

    async def screenshot(self) -> str:
        page = await self._active_page()
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = self.screenshot_dir / f"screenshot-{stamp}.png"
        try:
            await page.screenshot(path=str(path), full_page=True)
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to take screenshot: {exc}") from exc
        return str(path)

    async def scroll(self, direction: str = "down", amount: int = 300) -> str:
        page = await self._active_page()
        delta = -amount if direction.lower() == "up" else amount
        try:
            await page.evaluate("(dy) => window.scrollBy(0, dy)", delta)
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to scroll {direction}: {exc}") from exc
        return f"Scrolled {direction} by {amount} pixels"

    async def interactive_elements(self) -> list[dict[str, object]]:
        page = await self._active_page()
        try:
            return await page.evaluate(_INTERACTIVE_ELEMENTS_SCRIPT)
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to get interactive elements: {exc}") from exc

    async def new_tab(self, url: str | None = None) -> dict[str, object]:
        await self._ensure_started()
        tab_id = await self._open_tab()
        message = f"Created new tab (ID: {tab_id})"
        if url:
            navigated = await self.navigate(url)
            message = f"{message}. {navigated}"
        return {"message": message, "tab_id": tab_id}

    async def switch_tab(self, tab_id: int) -> str:
        await self._ensure_started()
        page = self._tabs.get(tab_id)
        if page is None:
            raise BrowserError(f"Tab with ID {tab_id} not found")
        self._active_tab_id = tab_id
        try:
            await page.bring_to_front()
            title = await page.title()
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to switch to tab {tab_id}: {exc}") from exc
        return f"Switched to tab {tab_id} (Title: {title}, URL: {page.url})"

    async def close_tab(self, tab_id: int | None = None) -> str:
        await self._ensure_started()
        target_id = self._active_tab_id if tab_id is None else tab_id
        page = self._tabs.get(target_id) if target_id is not None else None
        if page is None:
            raise BrowserError(f"Tab with ID {target_id} not found")
        try:
            await page.close()
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to close tab {target_id}: {exc}") from exc
        del self._tabs[target_id]

        if target_id == self._active_tab_id:
            if self._tabs:
                self._active_tab_id = next(iter(self._tabs))
            else:
                await self._open_tab()
        return f"Closed tab {target_id}"

    async def list_tabs(self) -> list[dict[str, object]]:
        await self._ensure_started()
        tabs: list[dict[str, object]] = []
        for tab_id, page in self._tabs.items():
            entry: dict[str, object] = {"id": tab_id, "is_active": tab_id == self._active_tab_id}
            try:
                entry["title"] = await page.title()
                entry["url"] = page.url
            except PlaywrightError as exc:
                entry.update(title="Error", url="Error", error=str(exc))
            tabs.append(entry)
        return tabs

    async def close(self) -> None:
        if self._context is None:
            return
        LOGGER.info("browser_closing", extra={"tabs": len(self._tabs)})
        await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._context = None
        self._browser = None
        self._playwright = None
        self._tabs.clear()
        self._active_tab_id = None

    async def _ensure_started(self) -> None:
        if self._context is not None:
            return
        try:
            self._context = await self._context_factory()
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to start browser: {exc}") from exc
        LOGGER.info("browser_started", extra={"headless": self.headless})
        await self._open_tab()

    async def _open_tab(self) -> int:
        try:
            page = await self._context.new_page()
        except PlaywrightError as exc:
            raise BrowserError(f"Failed to create new tab: {exc}") from exc
        tab_id = self._next_tab_id
        self._next_tab_id += 1
        self._tabs[tab_id] = page
        self._active_tab_id = tab_id
        return tab_id

    async def _active_page(self) -> Any:
        await self._ensure_started()
        page = self._tabs.get(self._active_tab_id) if self._active_tab_id is not None else None
        if page is None:
            raise BrowserError(f"Active tab (ID: {self._active_tab_id}) not found")
        return page

    async def _launch_chromium(self) -> Any:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        return await self._browser.new_context()


def _with_scheme(url: str) -> str:
    if url.startswith(("http://", "https://", "file://", "about:", "data:")):
        return url
    return f"https://{url}"


def _looks_like_selector(goal: str) -> bool:
    return any(marker in goal for marker in (".", "#", "["))
