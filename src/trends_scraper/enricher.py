"""Attach AI relevance scores to scraped trends."""

import asyncio
import logging
from typing import Dict, List, Sequence, Tuple

from .analyzer import Scorer, ScoringItem
from .database import CacheError, ScoreCache, ScoreKey
from .models import MarketResult, TrendRecord

logger = logging.getLogger(__name__)


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


class ScoreEnricher:
    """
    Scores records that are not cached yet, in fixed-size batches.

    A batch that keeps failing after ``max_retries`` attempts is left
    unscored; the run carries on.
    """

    def __init__(
        self,
        scorer: Scorer,
        cache: ScoreCache,
        batch_size: int = 25,
        max_retries: int = 3,
        retry_delay: float = 5.0,
        batch_delay: float = 1.5,
    ):
        self.scorer = scorer
        self.cache = cache
        self.batch_size = max(1, batch_size)
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.batch_delay = batch_delay

    async def enrich(self, results: Sequence[MarketResult]) -> int:
        """Score every record in results in place. Returns the number newly scored."""
        try:
            await self.cache.load()
        except CacheError as e:
            logger.error(f"{e}, scoring without cached scores")

        pending: List[Tuple[ScoreKey, TrendRecord]] = []
        for result in results:
            for record in result.records:
                key = ScoreKey(result.market.code, record.title)
                cached = self.cache.get(key)
                if cached is not None:
                    record.score = clamp_score(cached)
                else:
                    pending.append((key, record))

        total = sum(len(r.records) for r in results)
        logger.info(f"{total} trends, {len(pending)} need AI scoring")

        scored = 0
        batches = [
            pending[i:i + self.batch_size] for i in range(0, len(pending), self.batch_size)
        ]
        for number, batch in enumerate(batches, start=1):
            scored += await self._score_batch(number, batch)
            if number < len(batches) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        logger.info(f"AI scoring complete: {scored}/{len(pending)} newly scored")
        return scored

    async def _score_batch(self, number: int, batch: List[Tuple[ScoreKey, TrendRecord]]) -> int:
        items = [
            ScoringItem(id=index, title=record.title, breakdown=", ".join(record.breakdown))
            for index, (_, record) in enumerate(batch)
        ]

        scores = None
        for attempt in range(1, self.max_retries + 1):
            scores = await self.scorer.score_batch(items)
            if scores is not None:
                break
            if attempt < self.max_retries:
                wait = self.retry_delay * attempt
                logger.warning(
                    f"Batch {number} failed (attempt {attempt}/{self.max_retries}), "
                    f"retrying in {wait:.0f}s"
                )
                await asyncio.sleep(wait)
            else:
                logger.error(f"Batch {number} failed after {self.max_retries} attempts")

        if scores is None:
            return 0

        by_id = {s.id: clamp_score(s.score) for s in scores}
        fresh: Dict[ScoreKey, float] = {}
        for index, (key, record) in enumerate(batch):
            if index in by_id:
                record.score = by_id[index]
                fresh[key] = by_id[index]

        try:
            await self.cache.persist(fresh)
        except CacheError as e:
            logger.warning(f"Batch {number} scores kept in memory only: {e}")
        return len(fresh)
