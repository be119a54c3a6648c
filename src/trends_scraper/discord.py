"""Discord webhook batch reports."""

import httpx
import asyncio
import logging
from typing import Optional, Sequence
from datetime import datetime, timezone

from .models import BatchSummary, MarketResult

logger = logging.getLogger(__name__)

TOP_TRENDS = 10


def format_report(summary: BatchSummary, results: Sequence[MarketResult]) -> dict:
    """Format a batch summary as a Discord webhook message with embed."""
    all_ok = not summary.failed
    status_emoji = "✅" if all_ok else "⚠️"

    lines = []
    for market in summary.markets:
        mark = "🟢" if market.success else "🔴"
        line = f"{mark} **{market.code}**: {market.records} trends, {market.pages} page(s)"
        if market.reason:
            line += f" ({market.reason})"
        if not market.success and market.error:
            line += f"\n    {market.error[:120]}"
        lines.append(line)

    scored = [
        (result.market.code, record)
        for result in results
        for record in result.records
        if record.score is not None
    ]
    scored.sort(key=lambda item: item[1].score, reverse=True)

    fields = [
        {"name": "📊 Trends", "value": str(summary.total_records), "inline": True},
        {"name": "🤖 Scored", "value": str(summary.scored_records), "inline": True},
        {"name": "🗄️ Uploaded", "value": str(summary.inserted_count), "inline": True},
    ]

    if scored:
        top = "\n".join(
            f"`{record.score:>5.1f}` {record.title} ({code})"
            for code, record in scored[:TOP_TRENDS]
        )
        fields.append({"name": "🔥 Top trends", "value": top[:1024], "inline": False})

    if summary.output_path:
        fields.append({"name": "📁 Output", "value": summary.output_path, "inline": False})

    elapsed = (summary.finished_at - summary.started_at).total_seconds()

    embed = {
        "title": f"{status_emoji} Google Trends batch ({summary.timeframe}h)",
        "description": "\n".join(lines)[:4096] or "No markets processed",
        "color": 0x22C55E if all_ok else 0xF59E0B,
        "fields": fields,
        "footer": {"text": f"{len(summary.succeeded)}/{len(summary.markets)} markets • {elapsed:.0f}s"},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    return {
        "content": (
            f"{status_emoji} Trends batch finished: {summary.total_records} trends "
            f"from {len(summary.succeeded)}/{len(summary.markets)} markets"
        ),
        "embeds": [embed],
    }


async def send_batch_report(
    summary: BatchSummary,
    results: Sequence[MarketResult],
    webhook_url: str,
    max_retries: int = 3,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """
    Post a batch report to Discord.

    Returns:
        True if successful, False otherwise
    """
    if not webhook_url:
        return False

    message = format_report(summary, results)
    retry_delay = 1

    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
        for attempt in range(max_retries):
            try:
                response = await client.post(webhook_url, json=message)

                if response.status_code == 429:
                    # Rate limited
                    retry_after = response.json().get("retry_after", retry_delay * 2)
                    logger.warning(f"Discord rate limited, waiting {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue

                if response.status_code >= 400:
                    logger.error(
                        f"Discord webhook error {response.status_code}: {response.text}"
                    )
                    if response.status_code < 500:
                        break  # Don't retry client errors
                    await asyncio.sleep(retry_delay)
                    retry_delay *= 2
                    continue

                logger.info("Discord batch report sent")
                return True

            except httpx.TimeoutException:
                logger.warning(f"Discord timeout (attempt {attempt + 1})")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2

            except httpx.HTTPError as e:
                logger.error(f"Discord report error: {e}")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2

    logger.error("Failed to send Discord batch report")
    return False
