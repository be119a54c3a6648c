"""Idempotent upload of trends to a Supabase table over PostgREST."""

import httpx
import logging
from typing import List, Optional, Sequence

from .config import get_market_group
from .models import MarketResult, TrendStatus
from .output import SinkError

logger = logging.getLogger(__name__)


class SupabaseSink:
    """
    Inserts trends keyed by (country_code, title).

    Rows that already exist are left untouched (ignore-duplicates), so
    re-running a batch never rewrites earlier data.
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        table: str = "google_trends",
        active_only: bool = True,
        extra_columns: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self.service_key = service_key
        self.table = table
        self.active_only = active_only
        self.extra_columns = extra_columns
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_key)

    def build_rows(self, results: Sequence[MarketResult]) -> List[dict]:
        rows = []
        for result in results:
            if not result.success:
                continue
            for record in result.records:
                if self.active_only and record.status is not TrendStatus.ACTIVE:
                    continue
                row = {
                    "country_code": result.market.code,
                    "market_group": get_market_group(result.market.code),
                    "title": record.title,
                    "search_volume_base": record.search_volume.raw,
                    "trend_percentage": record.search_volume.trend_delta,
                    "time_started": record.time_started,
                    "breakdown": record.breakdown,
                    "status": record.status.value.lower(),
                }
                if self.extra_columns:
                    row["search_volume"] = record.search_volume.magnitude
                    row["score"] = record.score
                rows.append(row)
        return rows

    async def upsert(self, results: Sequence[MarketResult]) -> int:
        """
        Push rows and return how many were sent.

        Raises:
            SinkError: the request failed or was rejected
        """
        rows = self.build_rows(results)
        if not rows:
            logger.info("No trends to upload to Supabase")
            return 0

        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
            "Prefer": "resolution=ignore-duplicates,return=minimal",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self.url}/rest/v1/{self.table}",
                    params={"on_conflict": "country_code,title"},
                    headers=headers,
                    json=rows,
                )
            except httpx.HTTPError as e:
                raise SinkError(f"Supabase request failed: {e}") from e

        if response.status_code >= 400:
            raise SinkError(
                f"Supabase upsert failed ({response.status_code}): {response.text[:300]}"
            )

        logger.info(f"Pushed {len(rows)} trends to Supabase table {self.table}")
        return len(rows)
