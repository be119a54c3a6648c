"""Tests for the Playwright driver over stubbed pages and handles."""

from unittest.mock import AsyncMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from trends_scraper.browser import DriverError, PageTimeoutError, PlaywrightPageDriver


def handle_with(attributes=None, text="", text_error=None):
    attributes = attributes or {}
    handle = AsyncMock()
    handle.get_attribute.side_effect = lambda name: attributes.get(name)
    if text_error is not None:
        handle.inner_text.side_effect = text_error
    else:
        handle.inner_text.return_value = text
    return handle


def driver_for(handle=None):
    page = AsyncMock()
    page.query_selector.return_value = handle
    return PlaywrightPageDriver(page), page


class TestIsDisabled:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("attributes", [
        {"disabled": ""},
        {"aria-disabled": "true"},
        {"aria-disabled": "TRUE"},
        {"class": "mdc-button Disabled"},
    ])
    async def test_disabled_forms(self, attributes):
        driver, _ = driver_for(handle_with(attributes))
        assert await driver.is_disabled("button.next") is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("attributes", [
        {},
        {"aria-disabled": "false"},
        {"class": "mdc-button not-disabled"},
    ])
    async def test_enabled_forms(self, attributes):
        driver, _ = driver_for(handle_with(attributes))
        assert await driver.is_disabled("button.next") is False

    @pytest.mark.asyncio
    async def test_custom_token(self):
        driver, _ = driver_for(handle_with({"class": "pager is-off"}))
        assert await driver.is_disabled("button.next", disabled_token="is-off") is True

    @pytest.mark.asyncio
    async def test_missing_control_is_not_disabled(self):
        driver, _ = driver_for(None)
        assert await driver.is_disabled("button.next") is False

    @pytest.mark.asyncio
    async def test_detached_control_raises_driver_error(self):
        handle = handle_with()
        handle.get_attribute.side_effect = PlaywrightError("Element is not attached to the DOM")
        driver, _ = driver_for(handle)

        with pytest.raises(DriverError, match="not attached"):
            await driver.is_disabled("button.next")


class TestFirstText:

    @pytest.mark.asyncio
    async def test_reads_text(self):
        driver, _ = driver_for(handle_with(text="labubu"))
        assert await driver.first_text("tr:first-child div") == "labubu"

    @pytest.mark.asyncio
    async def test_detached_anchor_reads_as_absent(self):
        driver, _ = driver_for(handle_with(text_error=PlaywrightError("Element is not attached")))
        assert await driver.first_text("tr:first-child div") is None

    @pytest.mark.asyncio
    async def test_no_anchor(self):
        driver, _ = driver_for(None)
        assert await driver.first_text("tr:first-child div") is None


class TestErrorMapping:

    @pytest.mark.asyncio
    async def test_navigation_timeout(self):
        driver, page = driver_for()
        page.goto.side_effect = PlaywrightTimeoutError("Timeout 30000ms exceeded")

        with pytest.raises(PageTimeoutError):
            await driver.navigate("https://trends.google.com/trending?geo=US", timeout=30)

        assert page.goto.call_args.kwargs["timeout"] == 30_000

    @pytest.mark.asyncio
    async def test_navigation_failure(self):
        driver, page = driver_for()
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(DriverError) as info:
            await driver.navigate("https://trends.google.com/trending?geo=US", timeout=30)

        assert not isinstance(info.value, PageTimeoutError)

    @pytest.mark.asyncio
    async def test_selector_timeout(self):
        driver, page = driver_for()
        page.wait_for_selector.side_effect = PlaywrightTimeoutError("Timeout 10000ms exceeded")

        with pytest.raises(PageTimeoutError):
            await driver.wait_for_selector("table tbody tr", timeout=10)

    @pytest.mark.asyncio
    async def test_click_failure(self):
        driver, page = driver_for()
        page.click.side_effect = PlaywrightError("Element is outside of the viewport")

        with pytest.raises(DriverError, match="button.next"):
            await driver.click("button.next")

    @pytest.mark.asyncio
    async def test_query_failures_are_wrapped(self):
        driver, page = driver_for()
        page.query_selector.side_effect = PlaywrightError("Execution context was destroyed")
        page.query_selector_all.side_effect = PlaywrightTimeoutError("Timeout exceeded")

        with pytest.raises(DriverError, match="exists failed"):
            await driver.exists("button.next")
        with pytest.raises(PageTimeoutError):
            await driver.query_all("table tbody tr")

    @pytest.mark.asyncio
    async def test_read_text_under_missing_child(self):
        driver, _ = driver_for()
        row = AsyncMock()
        row.query_selector.return_value = None

        assert await driver.read_text(row, "div.mZ3RIc") is None
        assert await driver.read_attribute(row, "div.QxIiwc", "class") is None
