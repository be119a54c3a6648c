"""Sequential scraping of every configured market."""

import asyncio
import logging
from datetime import datetime
from typing import List, Sequence

from .browser import BrowserSession
from .models import Market, MarketResult
from .pagination import PaginationController

logger = logging.getLogger(__name__)


class MarketOrchestrator:
    """
    Runs one pagination pass per market, one market at a time.

    A market that blows up is recorded as failed and the batch moves on; the
    browser page used for it is always closed.
    """

    def __init__(
        self,
        session: BrowserSession,
        controller: PaginationController,
        timeframe: str,
        market_delay: float = 2.0,
    ):
        self.session = session
        self.controller = controller
        self.timeframe = timeframe
        self.market_delay = market_delay

    async def scrape_market(self, market: Market) -> MarketResult:
        """Scrape a single market. Never raises."""
        timestamp = datetime.now()
        logger.info(f"Scraping {market.name} ({market.code}), last {self.timeframe}h")

        try:
            async with self.session.page_scope() as driver:
                outcome = await self.controller.run(driver, market, self.timeframe)
        except Exception as e:
            logger.error(f"{market.code}: scraping failed: {e}")
            return MarketResult(
                market=market,
                timestamp=timestamp,
                success=False,
                error=str(e) or type(e).__name__,
            )

        if not outcome.success:
            logger.error(f"{market.code}: {outcome.reason.value}: {outcome.error}")

        return MarketResult(
            market=market,
            timestamp=timestamp,
            records=outcome.records,
            success=outcome.success,
            error=outcome.error,
            termination_reason=outcome.reason,
            pages_visited=outcome.pages_visited,
        )

    async def run(self, markets: Sequence[Market]) -> List[MarketResult]:
        """Scrape markets in order and return one result per market."""
        results = []

        for index, market in enumerate(markets):
            result = await self.scrape_market(market)
            results.append(result)

            if index < len(markets) - 1 and self.market_delay > 0:
                logger.debug(f"Sleeping {self.market_delay:.1f}s before next market")
                await asyncio.sleep(self.market_delay)

        succeeded = sum(1 for r in results if r.success)
        total = sum(len(r.records) for r in results)
        logger.info(
            f"Scraping complete: {succeeded}/{len(results)} markets succeeded, {total} trends"
        )
        return results
