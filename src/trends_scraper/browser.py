"""Browser boundary built on Playwright.

The scraper core only talks to a ``PageDriver``: navigate, query, read,
click and wait. ``PlaywrightPageDriver`` implements it over a real Chromium
page; tests substitute scripted drivers.
"""

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

from playwright.async_api import (
    async_playwright,
    Browser,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
)

logger = logging.getLogger(__name__)


class DriverError(Exception):
    """A browser operation failed."""


class PageTimeoutError(DriverError):
    """A bounded browser wait ran out of time."""


class PageDriver(ABC):
    """Capabilities the scraper needs from a loaded page."""

    @abstractmethod
    async def navigate(self, url: str, timeout: float) -> None:
        ...

    @abstractmethod
    async def wait_for_selector(self, selector: str, timeout: float) -> None:
        ...

    @abstractmethod
    async def query_all(self, selector: str) -> List[Any]:
        """Return handles for every element matching selector."""

    @abstractmethod
    async def read_text(self, element: Any, selector: str) -> Optional[str]:
        """Text of the first match of selector under element, None if absent."""

    @abstractmethod
    async def read_texts(self, element: Any, selector: str) -> List[str]:
        ...

    @abstractmethod
    async def read_attribute(self, element: Any, selector: str, name: str) -> Optional[str]:
        ...

    @abstractmethod
    async def exists(self, selector: str) -> bool:
        ...

    @abstractmethod
    async def is_disabled(self, selector: str, disabled_token: str = "disabled") -> bool:
        ...

    @abstractmethod
    async def first_text(self, selector: str) -> Optional[str]:
        """Text of the first page-level match of selector, None if absent."""

    @abstractmethod
    async def click(self, selector: str) -> None:
        ...

    async def wait_for_predicate(
        self,
        predicate: Callable[[], Awaitable[bool]],
        timeout: float,
        poll_interval: float = 0.25,
    ) -> None:
        """
        Poll predicate until it returns True.

        Raises:
            PageTimeoutError: predicate stayed False for timeout seconds
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            if await predicate():
                return
            if loop.time() >= deadline:
                raise PageTimeoutError(f"Condition not met within {timeout:.1f}s")
            await asyncio.sleep(poll_interval)


def translate_errors(method):
    """Re-raise Playwright failures as DriverError/PageTimeoutError."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except PlaywrightTimeoutError as e:
            raise PageTimeoutError(f"{method.__name__} timed out: {e}") from e
        except PlaywrightError as e:
            raise DriverError(f"{method.__name__} failed: {e}") from e

    return wrapper


class PlaywrightPageDriver(PageDriver):
    """PageDriver over a Playwright page. Timeouts are given in seconds."""

    def __init__(self, page: Page):
        self._page = page

    async def navigate(self, url: str, timeout: float) -> None:
        try:
            # domcontentloaded: the table renders client side, networkidle never settles
            await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise PageTimeoutError(f"Navigation to {url} timed out") from e
        except PlaywrightError as e:
            raise DriverError(str(e)) from e

    async def wait_for_selector(self, selector: str, timeout: float) -> None:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise PageTimeoutError(f"Selector '{selector}' did not appear") from e
        except PlaywrightError as e:
            raise DriverError(str(e)) from e

    @translate_errors
    async def query_all(self, selector: str) -> List[ElementHandle]:
        return await self._page.query_selector_all(selector)

    @translate_errors
    async def read_text(self, element: ElementHandle, selector: str) -> Optional[str]:
        child = await element.query_selector(selector)
        if child is None:
            return None
        return await child.inner_text()

    @translate_errors
    async def read_texts(self, element: ElementHandle, selector: str) -> List[str]:
        children = await element.query_selector_all(selector)
        return [await child.inner_text() for child in children]

    @translate_errors
    async def read_attribute(
        self, element: ElementHandle, selector: str, name: str
    ) -> Optional[str]:
        child = await element.query_selector(selector)
        if child is None:
            return None
        return await child.get_attribute(name)

    @translate_errors
    async def exists(self, selector: str) -> bool:
        return await self._page.query_selector(selector) is not None

    @translate_errors
    async def is_disabled(self, selector: str, disabled_token: str = "disabled") -> bool:
        handle = await self._page.query_selector(selector)
        if handle is None:
            return False
        if await handle.get_attribute("disabled") is not None:
            return True
        if (await handle.get_attribute("aria-disabled") or "").lower() == "true":
            return True
        classes = (await handle.get_attribute("class") or "").lower()
        return disabled_token.lower() in classes.split()

    @translate_errors
    async def first_text(self, selector: str) -> Optional[str]:
        handle = await self._page.query_selector(selector)
        if handle is None:
            return None
        try:
            return await handle.inner_text()
        except PlaywrightError:
            # Detached while the table re-rendered
            return None

    async def click(self, selector: str) -> None:
        try:
            await self._page.click(selector, timeout=5000)
        except PlaywrightError as e:
            raise DriverError(f"Click on '{selector}' failed: {e}") from e


class BrowserSession:
    """Owns the Playwright browser and hands out one page at a time."""

    def __init__(self, headless: bool = True, user_agent: Optional[str] = None):
        self.headless = headless
        self.user_agent = user_agent
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Start the browser instance (reused across markets)."""
        if self._initialized:
            return

        logger.info("Initializing Playwright browser...")
        self._playwright = await async_playwright().start()

        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=[
                "--disable-gpu",
                "--disable-dev-shm-usage",
                "--disable-setuid-sandbox",
                "--no-sandbox",
                "--disable-blink-features=AutomationControlled",
            ]
        )

        self._initialized = True
        logger.info("Browser initialized successfully")

    async def close(self) -> None:
        """Close browser and cleanup."""
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        self._initialized = False
        logger.info("Browser closed")

    async def __aenter__(self) -> "BrowserSession":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @asynccontextmanager
    async def page_scope(self) -> AsyncIterator[PageDriver]:
        """Open a fresh page for one market; it is closed even on failure."""
        if not self._initialized:
            await self.initialize()

        page = await self._browser.new_page(
            user_agent=self.user_agent,
            viewport={"width": 1280, "height": 800},
        )
        try:
            # Block unnecessary resources for speed
            await page.route("**/*.{png,jpg,jpeg,gif,svg,ico,woff,woff2}", lambda route: route.abort())
            await page.route("**/analytics*", lambda route: route.abort())
            await page.route("**/gtag*", lambda route: route.abort())

            yield PlaywrightPageDriver(page)
        finally:
            await page.close()
