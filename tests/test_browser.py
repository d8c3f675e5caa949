from __future__ import annotations

from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError

from llmcp.providers.browser import BrowserProvider
from llmcp.providers.errors import BrowserError


class FakeLocator:
    def __init__(self, page: "FakePage", text: str) -> None:
        self.page = page
        self.text = text

    @property
    def first(self) -> "FakeLocator":
        return self

    async def click(self, timeout: int | None = None) -> None:
        if self.text not in self.page.texts:
            raise PlaywrightError(f"no element with text {self.text}")
        self.page.clicked.append(f"text={self.text}")


class FakeElement:
    def __init__(self, text: str) -> None:
        self.text = text

    async def text_content(self) -> str:
        return self.text


class FakePage:
    def __init__(self) -> None:
        self.url = "about:blank"
        self.page_title = "Blank"
        self.selectors: set[str] = set()
        self.texts: set[str] = set()
        self.clicked: list[str] = []
        self.filled: dict[str, str] = {}
        self.evaluated: list[tuple[str, object]] = []
        self.summary: dict[str, object] = {"headings": [], "links": [], "text": ""}
        self.matches: dict[str, list[str]] = {}
        self.closed = False
        self.fail_navigation = False

    async def goto(self, url: str, wait_until: str, timeout: int) -> None:
        if self.fail_navigation:
            raise PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        self.url = url
        self.page_title = f"Title of {url}"

    async def title(self) -> str:
        return self.page_title

    async def wait_for_selector(self, selector: str, timeout: int) -> None:
        if selector not in self.selectors:
            raise PlaywrightError(f"Timeout waiting for {selector}")

    async def click(self, selector: str, timeout: int | None = None) -> None:
        if selector.startswith("xpath="):
            raise PlaywrightError("no xpath match")
        self.clicked.append(selector)

    def get_by_text(self, text: str) -> FakeLocator:
        return FakeLocator(self, text)

    async def fill(self, selector: str, text: str) -> None:
        self.filled[selector] = text

    async def evaluate(self, script: str, arg: object = None) -> object:
        self.evaluated.append((script, arg))
        if "maxLinks" in script:
            return self.summary
        if "querySelectorAll(selector)" in script:
            return [{"index": 0, "type": "button", "text": "Go"}]
        return None

    async def query_selector_all(self, selector: str) -> list[FakeElement]:
        return [FakeElement(text) for text in self.matches.get(selector, [])]

    async def screenshot(self, path: str, full_page: bool) -> None:
        Path(path).write_bytes(b"png")

    async def bring_to_front(self) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self) -> None:
        self.pages: list[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        page = FakePage()
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


def _provider(tmp_path: Path) -> tuple[BrowserProvider, FakeContext]:
    context = FakeContext()

    async def factory() -> FakeContext:
        return context

    provider = BrowserProvider(screenshot_dir=tmp_path / "shots", context_factory=factory)
    return provider, context


@pytest.mark.asyncio
async def test_browser_starts_lazily_with_one_tab(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)

    assert provider.initialized is False
    tabs = await provider.list_tabs()

    assert provider.initialized is True
    assert len(context.pages) == 1
    assert tabs == [{"id": 0, "is_active": True, "title": "Blank", "url": "about:blank"}]


@pytest.mark.asyncio
async def test_navigate_adds_scheme(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)

    message = await provider.navigate("example.com")

    assert context.pages[0].url == "https://example.com"
    assert message == "Successfully navigated to https://example.com (Title: Title of https://example.com)"


@pytest.mark.asyncio
async def test_navigation_failure_is_a_browser_error(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)
    await provider.list_tabs()
    context.pages[0].fail_navigation = True

    with pytest.raises(BrowserError, match="Failed to navigate to https://nowhere.invalid"):
        await provider.navigate("https://nowhere.invalid")


@pytest.mark.asyncio
async def test_click_falls_back_to_text_match(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)
    await provider.list_tabs()
    page = context.pages[0]
    page.selectors.add("#submit")
    page.texts.add("Sign in")

    assert "CSS selector: #submit" in await provider.click("#submit")
    assert "with text: Sign in" in await provider.click("Sign in")
    assert page.clicked == ["#submit", "text=Sign in"]


@pytest.mark.asyncio
async def test_click_reports_css_failure_when_nothing_matches(tmp_path: Path) -> None:
    provider, _context = _provider(tmp_path)

    with pytest.raises(BrowserError, match='Failed to click element "#missing"'):
        await provider.click("#missing")


@pytest.mark.asyncio
async def test_type_text_fills_the_field(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)
    await provider.list_tabs()
    context.pages[0].selectors.add("input[name=q]")

    message = await provider.type_text("input[name=q]", "llamas")

    assert context.pages[0].filled == {"input[name=q]": "llamas"}
    assert message == 'Successfully typed 6 characters into "input[name=q]"'


@pytest.mark.asyncio
async def test_extract_summarizes_the_page(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)
    await provider.list_tabs()
    context.pages[0].summary = {
        "headings": ["Welcome"],
        "links": [{"text": "Docs", "href": "https://example.com/docs"}],
        "text": "x" * 20_050,
    }

    result = await provider.extract("main points")

    assert result["headings"] == ["Welcome"]
    assert result["goal"] == "main points"
    assert result["truncated"] is True
    assert len(result["content"]) == 20_000


@pytest.mark.asyncio
async def test_extract_with_selector_collects_matching_text(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)
    await provider.list_tabs()
    context.pages[0].matches[".price"] = ["$10", "", "$12"]

    result = await provider.extract(".price")

    assert result["matches"] == 3
    assert result["content"] == "$10\n$12"


@pytest.mark.asyncio
async def test_screenshot_writes_png(tmp_path: Path) -> None:
    provider, _context = _provider(tmp_path)

    path = Path(await provider.screenshot())

    assert path.parent == tmp_path / "shots"
    assert path.suffix == ".png"
    assert path.read_bytes() == b"png"


@pytest.mark.asyncio
async def test_scroll_up_uses_negative_delta(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)

    message = await provider.scroll("up", 200)

    assert message == "Scrolled up by 200 pixels"
    assert context.pages[0].evaluated[-1][1] == -200


@pytest.mark.asyncio
async def test_interactive_elements(tmp_path: Path) -> None:
    provider, _context = _provider(tmp_path)

    assert await provider.interactive_elements() == [{"index": 0, "type": "button", "text": "Go"}]


@pytest.mark.asyncio
async def test_tab_ids_are_not_reused(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)

    created = await provider.new_tab("example.com")
    assert created["tab_id"] == 1
    assert str(created["message"]).startswith("Created new tab (ID: 1). Successfully navigated")

    assert await provider.close_tab(1) == "Closed tab 1"
    assert context.pages[1].closed is True
    tabs = await provider.list_tabs()
    assert [tab["id"] for tab in tabs] == [0]
    assert tabs[0]["is_active"] is True

    again = await provider.new_tab()
    assert again["tab_id"] == 2


@pytest.mark.asyncio
async def test_closing_last_tab_opens_a_fresh_one(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)
    await provider.list_tabs()

    await provider.close_tab()

    tabs = await provider.list_tabs()
    assert [tab["id"] for tab in tabs] == [1]
    assert len(context.pages) == 2


@pytest.mark.asyncio
async def test_switch_tab(tmp_path: Path) -> None:
    provider, _context = _provider(tmp_path)
    await provider.new_tab("example.com")

    message = await provider.switch_tab(0)

    assert message == "Switched to tab 0 (Title: Blank, URL: about:blank)"
    with pytest.raises(BrowserError, match="Tab with ID 7 not found"):
        await provider.switch_tab(7)


@pytest.mark.asyncio
async def test_close_releases_the_context(tmp_path: Path) -> None:
    provider, context = _provider(tmp_path)
    await provider.list_tabs()

    await provider.close()
    await provider.close()

    assert context.closed is True
    assert provider.initialized is False


@pytest.mark.asyncio
async def test_start_failure_is_a_browser_error(tmp_path: Path) -> None:
    async def broken() -> FakeContext:
        raise PlaywrightError("Executable doesn't exist")

    provider = BrowserProvider(context_factory=broken)

    with pytest.raises(BrowserError, match="Failed to start browser"):
        await provider.navigate("example.com")
