"""Mapping of trends-table rows to TrendRecord objects."""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from .browser import PageDriver
from .config import RowLocatorSet
from .models import TrendRecord, TrendStatus
from .normalizer import (
    normalize_breakdown,
    normalize_time_label,
    normalize_title,
    parse_volume,
)

logger = logging.getLogger(__name__)


async def resolve_locator(driver: PageDriver, candidates: Sequence[str]) -> Optional[str]:
    """Return the first candidate selector present on the page, or None."""
    for selector in candidates:
        if await driver.exists(selector):
            return selector
    return None


async def read_first_text(
    driver: PageDriver, element: Any, candidates: Sequence[str]
) -> Optional[str]:
    """Text of the first candidate that yields non-blank text under element."""
    for selector in candidates:
        text = await driver.read_text(element, selector)
        if text and text.strip():
            return text
    return None


class RecordExtractor(ABC):
    """Turns the currently loaded page into trend records."""

    @abstractmethod
    async def extract(self, driver: PageDriver, locators: RowLocatorSet) -> List[TrendRecord]:
        """
        Extract every well-formed record on the page.

        Must not raise: a page whose rows cannot be found is an empty page.
        """


class TableRecordExtractor(RecordExtractor):
    """Default extractor for the trending-now table layout."""

    async def extract(self, driver: PageDriver, locators: RowLocatorSet) -> List[TrendRecord]:
        try:
            row_selector = await resolve_locator(driver, locators.rows)
            if row_selector is None:
                logger.warning("No trend rows found on page")
                return []
            rows = await driver.query_all(row_selector)
        except Exception as e:
            logger.warning(f"Could not read trend rows: {e}")
            return []

        records = []
        for index, row in enumerate(rows):
            try:
                record = await self.extract_row(driver, row, locators)
            except Exception as e:
                logger.debug(f"Skipping row {index}: {e}")
                continue
            if record is not None:
                records.append(record)

        logger.debug(f"Extracted {len(records)}/{len(rows)} rows")
        return records

    async def extract_row(
        self, driver: PageDriver, row: Any, locators: RowLocatorSet
    ) -> Optional[TrendRecord]:
        """Build one record, or None when a required field is missing."""
        title = normalize_title(await read_first_text(driver, row, locators.title))
        volume_text = await read_first_text(driver, row, locators.volume)
        time_text = await read_first_text(driver, row, locators.time_started)

        if not title or not volume_text or not time_text:
            logger.debug(f"Dropping malformed row (title={title!r})")
            return None

        terms: List[str] = []
        for selector in locators.breakdown:
            terms = await driver.read_texts(row, selector)
            if terms:
                break

        return TrendRecord(
            title=title,
            search_volume=parse_volume(volume_text),
            time_started=normalize_time_label(time_text),
            breakdown=normalize_breakdown(terms),
            status=await self.read_status(driver, row, locators),
        )

    async def read_status(
        self, driver: PageDriver, row: Any, locators: RowLocatorSet
    ) -> TrendStatus:
        """
        Active when the status marker carries the active token, else Lasted.

        Only the first candidate that finds a marker is consulted.
        """
        token = locators.active_token.lower()
        for selector in locators.status_marker:
            classes = await driver.read_attribute(row, selector, "class")
            text = await driver.read_text(row, selector)
            if classes is None and text is None:
                continue
            if classes and token in classes.lower().split():
                return TrendStatus.ACTIVE
            if text and text.strip().lower() == token:
                return TrendStatus.ACTIVE
            return TrendStatus.LASTED
        return TrendStatus.LASTED
