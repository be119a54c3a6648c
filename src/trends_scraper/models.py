"""Pydantic data models for trends."""

from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime


class TrendStatus(str, Enum):
    """Whether a trend is still rising or has already run its course."""

    ACTIVE = "Active"
    LASTED = "Lasted"


class TerminationReason(str, Enum):
    """Why a market's pagination run stopped."""

    TIMEOUT_INITIAL_LOAD = "timeout-initial-load"
    EMPTY_FIRST_PAGE = "empty-first-page"
    NO_CONTROL = "end-of-data-no-control"
    CONTROL_DISABLED = "end-of-data-control-disabled"
    REPEATED_EMPTY_PAGES = "end-of-data-repeated-empty-pages"
    PAGE_CAP_REACHED = "page-cap-reached"
    ADVANCE_TIMEOUT = "advance-timeout"
    ADVANCE_FAILED = "advance-failed"
    CONTROL_UNREADABLE = "control-unreadable"

    @property
    def is_end_of_data(self) -> bool:
        return self in (
            TerminationReason.NO_CONTROL,
            TerminationReason.CONTROL_DISABLED,
            TerminationReason.REPEATED_EMPTY_PAGES,
        )


class Market(BaseModel):
    """One country/language combination scraped independently."""

    code: str = Field(..., description="Country code (US, GB, ID)")
    name: str = Field(..., description="Display name")
    language: str = Field(..., description="Language tag sent as hl (en-US)")


class SearchVolume(BaseModel):
    """Parsed search volume cell."""

    raw: str = Field(default="", description="Cleaned volume text (e.g. '10K+')")
    magnitude: int = Field(default=0, ge=0, description="Absolute search count")
    trend_delta: int = Field(default=0, description="Signed percentage change")


class TrendRecord(BaseModel):
    """A single trending search observed on one results page."""

    title: str = Field(..., description="Trend title/keyword")
    search_volume: SearchVolume = Field(default_factory=SearchVolume)
    time_started: str = Field(default="", description="When trend started (e.g. '3 hours ago')")
    breakdown: List[str] = Field(default_factory=list, description="Related search terms")
    status: TrendStatus = Field(default=TrendStatus.LASTED)
    score: Optional[float] = Field(default=None, ge=0, le=100, description="AI relevance score")

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be empty")
        return value


class MarketResult(BaseModel):
    """Outcome of one market's pagination run."""

    market: Market
    timestamp: datetime
    records: List[TrendRecord] = Field(default_factory=list)
    success: bool
    error: Optional[str] = None
    termination_reason: Optional[TerminationReason] = None
    pages_visited: int = 0


class MarketSummary(BaseModel):
    """Per-market line of a batch summary."""

    code: str
    success: bool
    records: int = 0
    pages: int = 0
    reason: Optional[str] = None
    error: Optional[str] = None


class BatchSummary(BaseModel):
    """Result of a full batch run across all markets."""

    started_at: datetime
    finished_at: datetime
    timeframe: str
    markets: List[MarketSummary] = Field(default_factory=list)
    total_records: int = 0
    scored_records: int = 0
    output_path: Optional[str] = None
    inserted_count: int = 0

    @property
    def succeeded(self) -> List[str]:
        return [m.code for m in self.markets if m.success]

    @property
    def failed(self) -> List[str]:
        return [m.code for m in self.markets if not m.success]

    @classmethod
    def from_results(
        cls,
        results: List[MarketResult],
        started_at: datetime,
        timeframe: str,
    ) -> "BatchSummary":
        records = [r for result in results for r in result.records]
        return cls(
            started_at=started_at,
            finished_at=datetime.now(),
            timeframe=timeframe,
            markets=[
                MarketSummary(
                    code=result.market.code,
                    success=result.success,
                    records=len(result.records),
                    pages=result.pages_visited,
                    reason=result.termination_reason.value if result.termination_reason else None,
                    error=result.error,
                )
                for result in results
            ],
            total_records=len(records),
            scored_records=sum(1 for r in records if r.score is not None),
        )
