"""Playwright implementation of the PageDriver protocol.

The browser is launched once per run. Every lookup gets its own browser
context and page, so no cookies, history or half-filled search boxes leak
from one identifier into the next. The context is closed when the lookup
ends, whatever its outcome.

Playwright timeouts are in milliseconds; the PageDriver protocol uses
seconds, converted at this boundary.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    async_playwright,
)
from playwright.async_api import (
    Error as PlaywrightError,
)
from playwright.async_api import (
    TimeoutError as PlaywrightTimeoutError,
)

from gtinscout.common.exceptions import PageDriverError, PageTimeoutError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


def _ms(seconds: float) -> float:
    return seconds * 1000.0


class PlaywrightPageDriver:
    """PageDriver backed by one Playwright page.

    Args:
        page: The page this driver controls exclusively.
    """

    def __init__(self, page: Page) -> None:
        self.page = page

    async def open(
        self, url: str, ready_condition: str, timeout: float
    ) -> None:
        try:
            await self.page.goto(
                url, wait_until=ready_condition, timeout=_ms(timeout)
            )
        except PlaywrightTimeoutError as e:
            raise PageTimeoutError(
                f"Timed out after {timeout}s waiting for {ready_condition}"
            ) from e
        except PlaywrightError as e:
            raise PageDriverError(f"Navigation to {url} failed: {e}") from e

    async def await_selector(self, selector: str, timeout: float) -> bool:
        try:
            await self.page.wait_for_selector(
                selector, state="attached", timeout=_ms(timeout)
            )
        except PlaywrightTimeoutError:
            logger.debug(f"Selector {selector} not found within {timeout}s")
            return False
        return True

    async def fill_and_submit(self, selector: str, text: str) -> None:
        try:
            await self.page.fill(selector, text)
            await self.page.press(selector, "Enter")
        except PlaywrightError as e:
            raise PageDriverError(
                f"Could not submit search in {selector}: {e}"
            ) from e

    async def read_attribute(self, selector: str, name: str) -> str | None:
        try:
            element = await self.page.query_selector(selector)
            if element is None:
                return None
            return await element.get_attribute(name)
        except PlaywrightError as e:
            raise PageDriverError(
                f"Could not read {name} of {selector}: {e}"
            ) from e

    async def read_text(self, selector: str) -> str | None:
        try:
            element = await self.page.query_selector(selector)
            if element is None:
                return None
            text = await element.text_content()
        except PlaywrightError as e:
            raise PageDriverError(f"Could not read text of {selector}: {e}") from e
        return (text or "").strip()

    async def find_link_by_text(
        self, container_selector: str, text_fragment: str
    ) -> str | None:
        try:
            container = await self.page.query_selector(container_selector)
            if container is None:
                return None
            anchors = await container.query_selector_all("a[href]")
            for anchor in anchors:
                text = await anchor.text_content() or ""
                if text_fragment in text:
                    href = await anchor.get_attribute("href")
                    if href:
                        return urljoin(self.page.url, href)
                    return None
        except PlaywrightError as e:
            raise PageDriverError(
                f"Could not search links in {container_selector}: {e}"
            ) from e
        return None

    async def close(self) -> None:
        if not self.page.is_closed():
            await self.page.close()


class PlaywrightSessionFactory:
    """Hands out one fresh browser context per lookup.

    Use PlaywrightSessionFactory.open() to launch the browser.

    Args:
        browser: The launched browser.
        context_kwargs: Arguments for browser.new_context().

    Example:
        async with PlaywrightSessionFactory.open(headless=True) as factory:
            async with factory.session() as driver:
                await workflow.run("3283950912914", driver)
    """

    def __init__(
        self, browser: Browser, context_kwargs: dict[str, Any] | None = None
    ) -> None:
        self.browser = browser
        self.context_kwargs = context_kwargs or {}

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        browser_type: str = "chromium",
        headless: bool = True,
        viewport: dict[str, int] | None = None,
        user_agent: str | None = None,
        locale: str = "de-DE",
    ) -> AsyncIterator[PlaywrightSessionFactory]:
        """Launch Playwright and a browser for the duration of a run.

        Args:
            browser_type: "chromium", "firefox" or "webkit".
            headless: Run the browser without a window.
            viewport: Viewport size (default 1280x720).
            user_agent: Custom user agent string (default: browser default).
            locale: Browser locale.

        Yields:
            A session factory bound to the launched browser.
        """
        if viewport is None:
            viewport = {"width": 1280, "height": 720}

        context_kwargs: dict[str, Any] = {
            "viewport": viewport,
            "locale": locale,
        }
        if user_agent:
            context_kwargs["user_agent"] = user_agent

        playwright = await async_playwright().start()
        try:
            browser_launcher = getattr(playwright, browser_type)
            browser: Browser = await browser_launcher.launch(headless=headless)
            logger.info(
                f"Launched {browser_type} (headless={headless}) "
                f"version {browser.version}"
            )
            try:
                yield cls(browser, context_kwargs)
            finally:
                await browser.close()
        finally:
            await playwright.stop()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PlaywrightPageDriver]:
        """Open a fresh browser context and page for one lookup."""
        context: BrowserContext = await self.browser.new_context(
            **self.context_kwargs
        )
        try:
            page = await context.new_page()
            driver = PlaywrightPageDriver(page)
            try:
                yield driver
            finally:
                await driver.close()
        finally:
            await context.close()
