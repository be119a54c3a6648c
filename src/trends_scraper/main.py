"""Main entry point - batch scraping, enrichment, output and scheduled runs."""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

import uvicorn

from .analyzer import GeminiScorer, Scorer
from .browser import BrowserSession
from .config import COUNTRIES, OUTPUT_FORMATS, TIME_WINDOWS, RowLocatorSet, Settings, load_settings
from .database import CacheError, ScoreCache
from .discord import send_batch_report
from .enricher import ScoreEnricher
from .health import HealthState, create_app
from .models import BatchSummary, MarketResult
from .orchestrator import MarketOrchestrator
from .output import SinkError, generate_output_path, write_high_score_report, write_results
from .pagination import PaginationController
from .supabase import SupabaseSink

logger = logging.getLogger(__name__)

# Shutdown flag for scheduled mode
_shutdown = asyncio.Event()


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )


async def scrape(settings: Settings, session: BrowserSession) -> List[MarketResult]:
    """Scrape every configured market with an open browser session."""
    controller = PaginationController(
        policy=settings.pagination_policy(),
        locators=RowLocatorSet(),
        category=settings.category_id,
    )
    orchestrator = MarketOrchestrator(
        session=session,
        controller=controller,
        timeframe=settings.timeframe,
        market_delay=settings.market_delay,
    )
    return await orchestrator.run(settings.markets)


async def enrich(settings: Settings, results: List[MarketResult], scorer: Optional[Scorer] = None) -> int:
    """Score all records, reusing the on-disk cache when it can be opened."""
    scorer = scorer or GeminiScorer(settings.api_key_list, model=settings.gemini_model)
    cache = ScoreCache(settings.cache_path)
    try:
        await cache.connect()
    except CacheError as e:
        logger.error(f"{e}, scoring without a cache")

    try:
        enricher = ScoreEnricher(
            scorer=scorer,
            cache=cache,
            batch_size=settings.ai_batch_size,
            max_retries=settings.ai_max_retries,
            retry_delay=settings.ai_retry_delay,
            batch_delay=settings.ai_batch_delay,
        )
        return await enricher.enrich(results)
    finally:
        await cache.close()


async def run_batch(
    settings: Settings,
    session: Optional[BrowserSession] = None,
    scorer: Optional[Scorer] = None,
    sink: Optional[SupabaseSink] = None,
) -> BatchSummary:
    """
    One full batch: scrape, score, write, upload and report.

    Raises:
        SinkError: output could not be written or uploaded
    """
    started_at = datetime.now()
    logger.info("=" * 60)
    logger.info(f"Google Trends batch starting: {settings.country_list}, last {settings.timeframe}h")

    if session is None:
        async with BrowserSession(headless=settings.headless, user_agent=settings.user_agent) as owned:
            results = await scrape(settings, owned)
    else:
        results = await scrape(settings, session)

    if settings.ai_enabled:
        await enrich(settings, results, scorer)
    else:
        logger.info("AI scoring disabled")

    summary = BatchSummary.from_results(results, started_at, settings.timeframe)

    output_path = Path(settings.output_path) if settings.output_path else generate_output_path(
        settings.output_dir, settings.output_format
    )
    write_results(results, output_path, settings.output_format)
    summary.output_path = str(output_path)

    if settings.output_format == "csv":
        write_high_score_report(
            results,
            output_path.with_name(output_path.stem + "-high-score.csv"),
            settings.high_score_threshold,
        )

    sink = sink or SupabaseSink(
        settings.supabase_url,
        settings.supabase_service_key,
        table=settings.supabase_table,
        active_only=settings.upload_active_only,
        extra_columns=settings.upload_extra_columns,
    )
    if settings.upload_enabled and sink.configured:
        summary.inserted_count = await sink.upsert(results)
    else:
        logger.info("Supabase upload skipped")

    summary.finished_at = datetime.now()

    for market in summary.markets:
        if market.success:
            logger.info(f"{market.code}: {market.records} trends ({market.reason})")
        else:
            logger.error(f"{market.code}: failed - {market.error}")
    logger.info(
        f"Batch complete: {len(summary.succeeded)}/{len(summary.markets)} markets, "
        f"{summary.total_records} trends, {summary.scored_records} scored"
    )

    if settings.discord_webhook_url:
        await send_batch_report(summary, results, settings.discord_webhook_url)

    return summary


async def run_health_server(app, port: int) -> None:
    """Run the FastAPI health server."""
    config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="warning")
    server = uvicorn.Server(config)

    try:
        await server.serve()
    except asyncio.CancelledError:
        pass


def handle_shutdown(sig, frame):
    """Signal handler for graceful shutdown."""
    logger.info(f"Received signal {sig}, initiating shutdown...")
    _shutdown.set()


async def run_scheduled(settings: Settings) -> None:
    """Run a batch every schedule_interval_hours until interrupted."""
    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    state = HealthState(settings.country_list)
    health_task = asyncio.create_task(run_health_server(create_app(state), settings.health_port))
    interval = settings.schedule_interval_hours * 3600

    logger.info(f"Scheduler started, one batch every {settings.schedule_interval_hours:g}h")

    while not _shutdown.is_set():
        state.batch_started()
        try:
            summary = await run_batch(settings)
            state.batch_finished(summary)
        except Exception as e:
            logger.error(f"Scheduled batch failed: {e}")
            state.batch_finished(None, error=str(e))

        state.next_run = datetime.now() + timedelta(seconds=interval)
        logger.info(f"Next batch at {state.next_run.isoformat()}")
        try:
            await asyncio.wait_for(_shutdown.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass  # Time for the next batch

    health_task.cancel()
    await asyncio.gather(health_task, return_exceptions=True)
    logger.info("Shutdown complete")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="trends-scraper",
        description="Scrape Google Trends trending searches for one or more countries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  trends-scraper                          # US, last 24 hours
  trends-scraper -c US,GB,JP              # several countries
  trends-scraper -c US -t 48 -f csv       # 48 hours, CSV output
  trends-scraper --no-headless            # show the browser window
  trends-scraper --schedule               # run every SCHEDULE_INTERVAL_HOURS
        """,
    )
    parser.add_argument("-c", "--countries", type=str, help="Comma-separated country codes")
    parser.add_argument("-t", "--timeframe", choices=TIME_WINDOWS, help="Time window in hours")
    parser.add_argument("-f", "--format", dest="output_format", choices=OUTPUT_FORMATS, help="Output format")
    parser.add_argument("-o", "--output", dest="output_path", type=str, help="Output file path")
    parser.add_argument("--no-headless", action="store_true", help="Show the browser window")
    parser.add_argument("--no-ai", action="store_true", help="Skip AI scoring")
    parser.add_argument("--no-upload", action="store_true", help="Skip the Supabase upload")
    parser.add_argument("--schedule", action="store_true", help="Keep running on an interval")
    parser.add_argument("--list-countries", action="store_true", help="Print supported countries and exit")
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level"
    )
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    """Apply command line overrides on top of environment settings."""
    settings = base or load_settings()
    overrides = {}
    if args.countries:
        overrides["countries"] = args.countries
    if args.timeframe:
        overrides["timeframe"] = args.timeframe
    if args.output_format:
        overrides["output_format"] = args.output_format
    if args.output_path:
        overrides["output_path"] = args.output_path
    if args.no_headless:
        overrides["headless"] = False
    if args.no_ai:
        overrides["ai_enabled"] = False
    if args.no_upload:
        overrides["upload_enabled"] = False
    if args.log_level:
        overrides["log_level"] = args.log_level
    return settings.model_copy(update=overrides)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)

    if args.list_countries:
        for code, market in COUNTRIES.items():
            print(f"{code}  {market.language:<6}  {market.name}")
        return 0

    settings = settings_from_args(args)
    setup_logging(settings.log_level)

    if settings.unknown_countries:
        logger.error(f"Unsupported country codes: {', '.join(settings.unknown_countries)}")
        logger.info(f"Supported country codes: {', '.join(COUNTRIES)}")
        return 2
    if settings.timeframe not in TIME_WINDOWS:
        logger.error(f"Unsupported timeframe {settings.timeframe}, use one of {TIME_WINDOWS}")
        return 2

    if args.schedule:
        await run_scheduled(settings)
        return 0

    try:
        summary = await run_batch(settings)
    except SinkError as e:
        logger.error(f"Collected trends could not be saved: {e}")
        return 1

    return 0 if summary.succeeded else 1


def run():
    """Entry point for the trends-scraper command."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    run()
