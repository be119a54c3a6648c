"""Page-by-page collection of one market's trends table.

The dashboard updates the table in place when "next page" is clicked, so an
advance is confirmed by watching the first row's text change rather than by
waiting for a navigation event.

    Loading -> Extracting -> DecidingAdvance -> Advancing -> Extracting ...
                   |               |               |
                   +---------------+---------------+--> Terminated
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .browser import DriverError, PageDriver, PageTimeoutError
from .config import PaginationPolicy, RowLocatorSet, build_trends_url
from .extractor import RecordExtractor, TableRecordExtractor, resolve_locator
from .models import Market, TerminationReason, TrendRecord
from .normalizer import normalize_title

logger = logging.getLogger(__name__)


class PaginationPhase(str, Enum):
    LOADING = "loading"
    EXTRACTING = "extracting"
    DECIDING_ADVANCE = "deciding-advance"
    ADVANCING = "advancing"
    TERMINATED = "terminated"


@dataclass
class PaginationState:
    """Mutable state of one pagination run."""

    market_code: str
    url: str
    current_page_index: int = 0
    cumulative_records: List[TrendRecord] = field(default_factory=list)
    last_page_first_record_fingerprint: Optional[str] = None
    consecutive_empty_pages: int = 0
    next_selector: Optional[str] = None
    success: bool = False
    reason: Optional[TerminationReason] = None
    error: Optional[str] = None

    def terminate(
        self, reason: TerminationReason, success: bool, error: Optional[str] = None
    ) -> PaginationPhase:
        self.reason = reason
        self.success = success
        self.error = error
        return PaginationPhase.TERMINATED


class PaginationOutcome(BaseModel):
    """What a finished pagination run yields."""

    records: List[TrendRecord] = Field(default_factory=list)
    success: bool
    reason: TerminationReason
    error: Optional[str] = None
    pages_visited: int = 0


class PaginationController:
    """
    Drives one browser page through every results page of a market.

    Args:
        policy: Timeouts, page cap and empty-page tolerance
        locators: Candidate selectors for rows, fields and controls
        extractor: Row-to-record strategy (defaults to the table layout)
        category: Optional Google Trends category added to the request
    """

    def __init__(
        self,
        policy: PaginationPolicy,
        locators: Optional[RowLocatorSet] = None,
        extractor: Optional[RecordExtractor] = None,
        category: Optional[int] = None,
    ):
        self.policy = policy
        self.locators = locators or RowLocatorSet()
        self.extractor = extractor or TableRecordExtractor()
        self.category = category

    async def run(self, driver: PageDriver, market: Market, timeframe: str) -> PaginationOutcome:
        """Collect all pages for a market. Never raises for page-level problems."""
        state = PaginationState(
            market_code=market.code,
            url=build_trends_url(market, timeframe, self.category),
        )
        handlers = {
            PaginationPhase.LOADING: self._load,
            PaginationPhase.EXTRACTING: self._extract,
            PaginationPhase.DECIDING_ADVANCE: self._decide_advance,
            PaginationPhase.ADVANCING: self._advance,
        }

        phase = PaginationPhase.LOADING
        while phase is not PaginationPhase.TERMINATED:
            logger.debug(f"{market.code}: page {state.current_page_index} -> {phase.value}")
            phase = await handlers[phase](driver, state)

        logger.info(
            f"{market.code}: pagination finished ({state.reason.value}) after "
            f"{state.current_page_index} page(s), {len(state.cumulative_records)} records"
        )
        return PaginationOutcome(
            records=state.cumulative_records,
            success=state.success,
            reason=state.reason,
            error=state.error,
            pages_visited=state.current_page_index,
        )

    async def _load(self, driver: PageDriver, state: PaginationState) -> PaginationPhase:
        logger.debug(f"{state.market_code}: loading {state.url}")
        try:
            await driver.navigate(state.url, timeout=self.policy.page_load_timeout)
            # Any candidate row selector counts as the table being present
            await driver.wait_for_selector(
                ", ".join(self.locators.rows), timeout=self.policy.row_wait_timeout
            )
        except DriverError as e:
            logger.warning(f"{state.market_code}: trends table did not load: {e}")
            return state.terminate(
                TerminationReason.TIMEOUT_INITIAL_LOAD, success=False, error=str(e)
            )

        state.current_page_index = 1
        return PaginationPhase.EXTRACTING

    async def _extract(self, driver: PageDriver, state: PaginationState) -> PaginationPhase:
        records = await self.extractor.extract(driver, self.locators)

        if records and state.current_page_index > 1 and (
            records[0].title == state.last_page_first_record_fingerprint
        ):
            # Same first row as the previous page: the table did not really move
            logger.warning(
                f"{state.market_code}: page {state.current_page_index} repeats the previous page"
            )
            records = []

        if not records:
            if state.current_page_index == 1:
                return state.terminate(
                    TerminationReason.EMPTY_FIRST_PAGE,
                    success=False,
                    error="No trends extracted from the first page",
                )

            state.consecutive_empty_pages += 1
            if state.consecutive_empty_pages > self.policy.empty_page_tolerance:
                return state.terminate(TerminationReason.REPEATED_EMPTY_PAGES, success=True)

            logger.info(
                f"{state.market_code}: page {state.current_page_index} is empty, "
                f"trying the next one"
            )
            return PaginationPhase.DECIDING_ADVANCE

        state.consecutive_empty_pages = 0
        state.cumulative_records.extend(records)
        state.last_page_first_record_fingerprint = records[0].title
        logger.info(
            f"{state.market_code}: page {state.current_page_index}: {len(records)} trends"
        )
        return PaginationPhase.DECIDING_ADVANCE

    async def _decide_advance(self, driver: PageDriver, state: PaginationState) -> PaginationPhase:
        try:
            state.next_selector = await resolve_locator(driver, self.locators.next_page)
            disabled = state.next_selector is not None and await driver.is_disabled(
                state.next_selector, self.locators.disabled_token
            )
        except DriverError as e:
            logger.error(f"{state.market_code}: could not inspect next page control: {e}")
            return state.terminate(
                TerminationReason.CONTROL_UNREADABLE, success=True, error=str(e)
            )

        if state.next_selector is None:
            return state.terminate(TerminationReason.NO_CONTROL, success=True)

        if disabled:
            return state.terminate(TerminationReason.CONTROL_DISABLED, success=True)

        if state.current_page_index >= self.policy.max_pages:
            logger.warning(
                f"{state.market_code}: stopping at page cap ({self.policy.max_pages}), "
                f"next control still enabled"
            )
            return state.terminate(
                TerminationReason.PAGE_CAP_REACHED,
                success=True,
                error=f"Page cap of {self.policy.max_pages} reached",
            )

        return PaginationPhase.ADVANCING

    async def _anchor_text(self, driver: PageDriver) -> Optional[str]:
        anchor = await resolve_locator(driver, self.locators.first_row_anchor)
        if anchor is None:
            return None
        text = await driver.first_text(anchor)
        return normalize_title(text) if text is not None else None

    async def _advance(self, driver: PageDriver, state: PaginationState) -> PaginationPhase:
        try:
            fingerprint = await self._anchor_text(driver)
            await driver.click(state.next_selector)
        except DriverError as e:
            logger.error(f"{state.market_code}: could not advance to the next page: {e}")
            return state.terminate(TerminationReason.ADVANCE_FAILED, success=True, error=str(e))

        # An empty table has no anchor to compare, so any state counts as changed
        async def content_changed() -> bool:
            current = await self._anchor_text(driver)
            return current is None or current != fingerprint

        try:
            await driver.wait_for_predicate(
                content_changed,
                timeout=self.policy.content_change_timeout,
                poll_interval=self.policy.poll_interval,
            )
        except PageTimeoutError as e:
            logger.error(
                f"{state.market_code}: page {state.current_page_index + 1} never rendered "
                f"after clicking next: {e}"
            )
            return state.terminate(
                TerminationReason.ADVANCE_TIMEOUT,
                success=True,
                error=f"Pagination stalled after page {state.current_page_index}",
            )
        except DriverError as e:
            logger.error(f"{state.market_code}: lost the table while waiting for the next page: {e}")
            return state.terminate(TerminationReason.ADVANCE_FAILED, success=True, error=str(e))

        state.current_page_index += 1
        if self.policy.settle_delay > 0:
            await asyncio.sleep(self.policy.settle_delay)
        return PaginationPhase.EXTRACTING
