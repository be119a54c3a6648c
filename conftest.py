"""Shared fixtures: a scripted stand-in for the trends dashboard."""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union

import pytest

from trends_scraper.browser import DriverError, PageDriver, PageTimeoutError
from trends_scraper.config import PaginationPolicy, RowLocatorSet

LOCATORS = RowLocatorSet()


@dataclass
class FakeRow:
    title: Optional[str] = None
    volume: Optional[str] = "10K+100"
    time: Optional[str] = "3 hours ago trending_up Active"
    status_class: Optional[str] = "status active"
    # Marker text; a marker with neither class nor text is absent
    status_text: Optional[str] = None
    # Class seen by the looser second status candidate
    fallback_status_class: Optional[str] = None
    breakdown: List[str] = field(default_factory=list)
    broken: bool = False


@dataclass
class FakePage:
    rows: List[FakeRow] = field(default_factory=list)
    next_control: str = "enabled"  # enabled | disabled | absent


def make_page(prefix: str, count: int = 3, next_control: str = "enabled") -> FakePage:
    return FakePage(
        rows=[FakeRow(title=f"{prefix} trend {i}") for i in range(1, count + 1)],
        next_control=next_control,
    )


class FakeDashboard(PageDriver):
    """
    In-memory dashboard answering the default locators.

    ``pages`` is either a list (clicking past the end stays on the last page)
    or a callable building page N on demand.
    """

    def __init__(
        self,
        pages: Union[Sequence[FakePage], Callable[[int], FakePage]],
        load_fails: bool = False,
        stall_after: Optional[int] = None,
        click_fails: bool = False,
    ):
        self._pages = pages
        self.load_fails = load_fails
        self.stall_after = stall_after
        self.click_fails = click_fails
        self.index = 0
        self.clicks = 0
        self.navigated: List[str] = []

    @property
    def page(self) -> FakePage:
        if callable(self._pages):
            return self._pages(self.index)
        return self._pages[min(self.index, len(self._pages) - 1)]

    async def navigate(self, url: str, timeout: float) -> None:
        self.navigated.append(url)
        if self.load_fails:
            raise PageTimeoutError(f"Navigation to {url} timed out")

    async def wait_for_selector(self, selector: str, timeout: float) -> None:
        if self.load_fails:
            raise PageTimeoutError(f"Selector '{selector}' did not appear")

    async def query_all(self, selector: str):
        if selector == LOCATORS.rows[0]:
            return list(self.page.rows)
        return []

    async def read_text(self, element: FakeRow, selector: str) -> Optional[str]:
        if element.broken:
            raise DriverError("element detached")
        if selector == LOCATORS.title[0]:
            return element.title
        if selector == LOCATORS.volume[0]:
            return element.volume
        if selector == LOCATORS.time_started[0]:
            return element.time
        if selector == LOCATORS.status_marker[0]:
            if element.status_class is None and element.status_text is None:
                return None
            return element.status_text or ""
        return None

    async def read_texts(self, element: FakeRow, selector: str) -> List[str]:
        if selector == LOCATORS.breakdown[0]:
            return list(element.breakdown)
        return []

    async def read_attribute(self, element: FakeRow, selector: str, name: str) -> Optional[str]:
        if name != "class":
            return None
        if selector == LOCATORS.status_marker[0]:
            return element.status_class
        if selector == LOCATORS.status_marker[1]:
            return element.fallback_status_class
        return None

    async def exists(self, selector: str) -> bool:
        if selector == LOCATORS.rows[0]:
            return bool(self.page.rows)
        if selector == LOCATORS.next_page[0]:
            return self.page.next_control != "absent"
        if selector == LOCATORS.first_row_anchor[0]:
            return bool(self.page.rows)
        return False

    async def is_disabled(self, selector: str, disabled_token: str = "disabled") -> bool:
        return self.page.next_control == "disabled"

    async def first_text(self, selector: str) -> Optional[str]:
        if selector == LOCATORS.first_row_anchor[0] and self.page.rows:
            return self.page.rows[0].title
        return None

    async def click(self, selector: str) -> None:
        self.clicks += 1
        if self.click_fails:
            raise DriverError("button detached")
        if self.stall_after is not None and self.index + 1 >= self.stall_after:
            return
        self.index += 1


class FakeSession:
    """Stands in for BrowserSession, tracking page scopes."""

    def __init__(self, drivers):
        self._drivers = drivers
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def page_scope(self):
        driver = self._drivers[self.opened]
        self.opened += 1
        try:
            if isinstance(driver, Exception):
                raise driver
            yield driver
        finally:
            self.closed += 1


@pytest.fixture
def fast_policy():
    """Pagination policy with tiny timeouts."""
    return PaginationPolicy(
        page_load_timeout=1.0,
        row_wait_timeout=1.0,
        content_change_timeout=0.05,
        poll_interval=0.01,
        settle_delay=0,
        max_pages=20,
        empty_page_tolerance=1,
    )
