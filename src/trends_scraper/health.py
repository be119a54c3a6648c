"""FastAPI health check server for scheduled mode."""

from fastapi import FastAPI
from datetime import datetime
from typing import List, Optional
import logging

from .models import BatchSummary

logger = logging.getLogger(__name__)


class HealthState:
    """What the scheduler has done so far."""

    def __init__(self, countries: List[str]):
        self.countries = countries
        self.start_time = datetime.now()
        self.running = False
        self.last_summary: Optional[BatchSummary] = None
        self.last_error: Optional[str] = None
        self.next_run: Optional[datetime] = None
        self.batches_run = 0

    def batch_started(self) -> None:
        self.running = True

    def batch_finished(self, summary: Optional[BatchSummary], error: Optional[str] = None) -> None:
        self.running = False
        self.batches_run += 1
        self.last_error = error
        if summary is not None:
            self.last_summary = summary

    @property
    def healthy(self) -> bool:
        if self.last_error:
            return False
        if self.last_summary is None:
            return True
        # Unhealthy only when every market failed
        return bool(self.last_summary.succeeded) or not self.last_summary.markets


def create_app(state: HealthState) -> FastAPI:
    """Build the health app around a scheduler state."""
    app = FastAPI(title="Google Trends Scraper", version="1.0.0")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Google Trends Scraper",
            "version": "1.0.0",
            "status": "running",
        }

    @app.get("/healthz")
    async def healthcheck():
        """Health check endpoint for container orchestration."""
        summary = state.last_summary
        return {
            "status": "healthy" if state.healthy else "unhealthy",
            "uptime_seconds": int((datetime.now() - state.start_time).total_seconds()),
            "batch_running": state.running,
            "last_batch": summary.finished_at.isoformat() if summary else None,
            "next_batch": state.next_run.isoformat() if state.next_run else None,
            "failed_markets": summary.failed if summary else [],
            "error": state.last_error,
            "countries": state.countries,
        }

    @app.get("/stats")
    async def stats():
        """Get the last batch summary."""
        return {
            "uptime_seconds": int((datetime.now() - state.start_time).total_seconds()),
            "batches_run": state.batches_run,
            "last_summary": state.last_summary.model_dump(mode="json") if state.last_summary else None,
        }

    @app.get("/ready")
    async def readiness():
        """Readiness check for Kubernetes."""
        return {"ready": not state.running or state.batches_run > 0}

    return app
