"""Browse capability provider backed by Playwright.

The exploration loop only depends on the :class:`BrowseProvider` protocol;
:class:`PlaywrightBrowser` is the production implementation driving a real
Chromium page.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Literal, Optional, Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .auth import AuthConfig, build_context_options
from .models import Element, ErrorRecord

LOGGER = logging.getLogger(__name__)

ActKind = Literal["click", "fill"]

INTERACTIVE_SELECTOR = 'a, button, input, select, textarea, [role="button"]'

# Collects visible interactive controls as plain values.
EXTRACT_ELEMENTS_JS = """
(query) => {
    const selectorFor = (el) => {
        if (el.id) return `#${CSS.escape(el.id)}`;
        if (el.className && typeof el.className === 'string') {
            const classes = el.className.split(/\\s+/).filter(Boolean);
            if (classes.length) {
                return `${el.tagName.toLowerCase()}.${classes.map((c) => CSS.escape(c)).join('.')}`;
            }
        }
        return el.tagName.toLowerCase();
    };

    return Array.from(document.querySelectorAll(query)).map((el, index) => ({
        id: `el_${index}`,
        tagName: el.tagName,
        type: el.type || null,
        text: el.innerText || el.value || el.placeholder || el.name || el.getAttribute('aria-label') || '',
        href: el.href || null,
        selector: selectorFor(el),
        isVisible: el.offsetWidth > 0 && el.offsetHeight > 0,
    })).filter((el) => el.isVisible);
}
"""

# Clicks the first match through the DOM so overlays do not block the click.
CLICK_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    el.click();
    return true;
}
"""


class InitializationError(RuntimeError):
    """Raised when the browse session cannot be created or reach the start URL."""


class ActionError(RuntimeError):
    """Raised when a click or fill cannot be performed."""

    def __init__(self, selector: str, message: str):
        self.selector = selector
        self.message = message
        super().__init__(f"{message} (selector={selector})")


class BrowseProvider(Protocol):
    """Capabilities the exploration loop needs from a browser session."""

    async def initialize(self, start_url: str) -> str: ...

    def observe_errors(self) -> List[ErrorRecord]: ...

    async def observe_elements(self) -> List[Element]: ...

    async def act(self, selector: str, kind: ActKind, value: Optional[str] = None) -> None: ...

    async def settle(self) -> None: ...

    def current_url(self) -> str: ...

    async def shutdown(self) -> None: ...


class PlaywrightBrowser:
    """Single-page Chromium session that buffers page anomalies."""

    def __init__(
        self,
        *,
        headless: bool = True,
        settle_delay: float = 2.0,
        navigation_timeout: float = 30.0,
        action_timeout: float = 5.0,
        auth: Optional[AuthConfig] = None,
    ) -> None:
        self.headless = headless
        self.settle_delay = settle_delay
        self.navigation_timeout = navigation_timeout
        self.action_timeout = action_timeout
        self.auth = auth
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._errors: List[ErrorRecord] = []

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session is not initialized")
        return self._page

    async def initialize(self, start_url: str) -> str:
        """Launch Chromium, open a page and navigate to ``start_url``."""
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._context = await self._browser.new_context(
                **build_context_options(self.auth)
            )
            if self.auth and self.auth.cookies:
                await self._context.add_cookies(self.auth.cookies)
                LOGGER.info("Auth: injected %d cookie(s)", len(self.auth.cookies))
            self._page = await self._context.new_page()
            self._install_listeners(self._page)
            await self._page.goto(
                start_url,
                wait_until="load",
                timeout=self.navigation_timeout * 1000,
            )
        except Exception as exc:
            try:
                await self.shutdown()
            except Exception as cleanup_exc:
                LOGGER.warning("Cleanup after failed start also failed: %s", cleanup_exc)
            raise InitializationError(
                f"Failed to open browse session at {start_url}: {exc}"
            ) from exc

        LOGGER.info("Browse session ready at %s", self._page.url)
        return self._page.url

    def _install_listeners(self, page: Page) -> None:
        page.on("pageerror", self._on_page_error)
        page.on("console", self._on_console)
        page.on("response", self._on_response)

    def _on_page_error(self, error: Any) -> None:
        message = getattr(error, "message", None) or str(error)
        self._errors.append(
            ErrorRecord(kind="pageerror", message=message, url=self.current_url())
        )

    def _on_console(self, message: Any) -> None:
        if message.type != "error":
            return
        self._errors.append(
            ErrorRecord(kind="console_error", message=message.text, url=self.current_url())
        )

    def _on_response(self, response: Any) -> None:
        if 400 <= response.status < 600:
            self._errors.append(
                ErrorRecord(
                    kind="network_error",
                    status=response.status,
                    url=response.url,
                    page_url=self.current_url(),
                )
            )

    def observe_errors(self) -> List[ErrorRecord]:
        """Return the anomalies buffered since the last call and clear them."""
        drained, self._errors = self._errors, []
        return drained

    async def observe_elements(self) -> List[Element]:
        if self._page is None:
            return []
        payload = await self._page.evaluate(EXTRACT_ELEMENTS_JS, INTERACTIVE_SELECTOR)
        return [Element.from_dom(item) for item in payload or []]

    async def act(self, selector: str, kind: ActKind, value: Optional[str] = None) -> None:
        page = self.page
        try:
            if kind == "click":
                await page.mouse.move(0, 0)
                found = await page.evaluate(CLICK_JS, selector)
                if not found:
                    raise ActionError(selector, "No element matches selector")
            elif kind == "fill":
                await page.fill(selector, value or "", timeout=self.action_timeout * 1000)
            else:
                raise ActionError(selector, f"Unsupported action kind: {kind}")
        except PlaywrightError as exc:
            raise ActionError(selector, exc.message) from exc

    async def settle(self) -> None:
        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)

    def current_url(self) -> str:
        return self._page.url if self._page is not None else ""

    async def shutdown(self) -> None:
        """Release the page, browser and driver. Safe to call repeatedly."""
        browser, playwright = self._browser, self._playwright
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
        try:
            if browser is not None:
                await browser.close()
        finally:
            if playwright is not None:
                await playwright.stop()
