"""Configuration settings using Pydantic."""

from urllib.parse import urlencode

from pydantic_settings import BaseSettings
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Tuple

from .models import Market

TRENDS_BASE_URL = "https://trends.google.com/trending"

# Allowed values of the hours parameter: 24h, 48h and 7 days
TIME_WINDOWS = ("24", "48", "168")

OUTPUT_FORMATS = ("json", "csv")

COUNTRIES: Dict[str, Market] = {
    m.code: m
    for m in [
        Market(code="AE", name="United Arab Emirates", language="ar-AE"),
        Market(code="AR", name="Argentina", language="es-AR"),
        Market(code="AU", name="Australia", language="en-AU"),
        Market(code="BR", name="Brazil", language="pt-BR"),
        Market(code="CA", name="Canada", language="en-CA"),
        Market(code="CL", name="Chile", language="es-CL"),
        Market(code="CO", name="Colombia", language="es-CO"),
        Market(code="DE", name="Germany", language="de-DE"),
        Market(code="EG", name="Egypt", language="ar-EG"),
        Market(code="ES", name="Spain", language="es-ES"),
        Market(code="FR", name="France", language="fr-FR"),
        Market(code="GB", name="United Kingdom", language="en-GB"),
        Market(code="ID", name="Indonesia", language="id-ID"),
        Market(code="IE", name="Ireland", language="en-IE"),
        Market(code="IN", name="India", language="en-IN"),
        Market(code="IT", name="Italy", language="it-IT"),
        Market(code="JP", name="Japan", language="ja-JP"),
        Market(code="KR", name="South Korea", language="ko-KR"),
        Market(code="MX", name="Mexico", language="es-MX"),
        Market(code="MY", name="Malaysia", language="ms-MY"),
        Market(code="NG", name="Nigeria", language="en-NG"),
        Market(code="NL", name="Netherlands", language="nl-NL"),
        Market(code="NZ", name="New Zealand", language="en-NZ"),
        Market(code="PE", name="Peru", language="es-PE"),
        Market(code="PH", name="Philippines", language="en-PH"),
        Market(code="PK", name="Pakistan", language="en-PK"),
        Market(code="RU", name="Russia", language="ru-RU"),
        Market(code="SA", name="Saudi Arabia", language="ar-SA"),
        Market(code="SE", name="Sweden", language="sv-SE"),
        Market(code="SG", name="Singapore", language="en-SG"),
        Market(code="TH", name="Thailand", language="th-TH"),
        Market(code="US", name="United States", language="en-US"),
        Market(code="VN", name="Vietnam", language="vi-VN"),
    ]
}


# Region buckets stored alongside uploaded trends
MARKET_GROUPS: Dict[str, Tuple[str, ...]] = {
    "north_america": ("US", "CA", "MX"),
    "latin_america": ("AR", "BR", "CL", "CO", "PE"),
    "europe": ("DE", "ES", "FR", "GB", "IE", "IT", "NL", "RU", "SE"),
    "asia_pacific": ("AU", "ID", "IN", "JP", "KR", "MY", "NZ", "PH", "PK", "SG", "TH", "VN"),
    "middle_east_africa": ("AE", "EG", "NG", "SA"),
}


def get_market_group(code: str) -> str:
    """Region bucket of a country code, "other" when it has none."""
    code = code.upper()
    for group, codes in MARKET_GROUPS.items():
        if code in codes:
            return group
    return "other"


def build_trends_url(
    market: Market, hours: str, category: Optional[int] = None
) -> str:
    """Build the trending-now dashboard URL for a market and time window."""
    params = {"geo": market.code, "hl": market.language, "hours": hours}
    if category is not None:
        params["category"] = str(category)
    return f"{TRENDS_BASE_URL}?{urlencode(params)}"


class RowLocatorSet(BaseModel):
    """
    Structural locators for the trends table.

    Every field is an ordered list of candidate CSS selectors. Candidates are
    tried in order and the first one that matches wins, so markets rendering
    a slightly different markup still resolve.
    """

    rows: List[str] = Field(default_factory=lambda: [
        "table tbody tr[data-row-id]",
        "#trend-table tbody tr",
        "table tbody tr",
    ])
    title: List[str] = Field(default_factory=lambda: [
        "div.mZ3RIc",
        "td:nth-child(2) div:first-child",
    ])
    volume: List[str] = Field(default_factory=lambda: [
        "div.qNpYPd",
        "td:nth-child(3)",
    ])
    time_started: List[str] = Field(default_factory=lambda: [
        "div.vdw3Ld",
        "td:nth-child(4) div:first-child",
        "td:nth-child(4)",
    ])
    status_marker: List[str] = Field(default_factory=lambda: [
        "div.QxIiwc",
        'td:nth-child(4) div[class*="status"]',
        'td:nth-child(1) div[class*="icon"]',
    ])
    breakdown: List[str] = Field(default_factory=lambda: [
        "td:nth-child(5) button span.mUIrbf-vQzf8d",
        "td:nth-child(5) button",
        "td:nth-child(5) span",
    ])
    next_page: List[str] = Field(default_factory=lambda: [
        'button[aria-label="Go to next page"]',
        'button[aria-label*="next page" i]',
        ".pagination button:last-child",
    ])
    first_row_anchor: List[str] = Field(default_factory=lambda: [
        "table tbody tr:first-child div.mZ3RIc",
        "table tbody tr:first-child td:nth-child(2)",
    ])
    active_token: str = Field(default="active", description="Marker class token meaning Active")
    disabled_token: str = Field(default="disabled", description="Control class token meaning disabled")


class PaginationPolicy(BaseModel):
    """Timeouts and limits driving one market's pagination run."""

    page_load_timeout: float = 30.0
    row_wait_timeout: float = 10.0
    content_change_timeout: float = 15.0
    poll_interval: float = 0.25
    settle_delay: float = 1.0
    max_pages: int = 20
    empty_page_tolerance: int = 1


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Google Trends
    countries: str = Field(default="US", description="Comma-separated country codes")
    timeframe: str = Field(default="24", description="Time window in hours (24, 48, 168)")
    category_id: Optional[int] = Field(default=None, description="Optional Google Trends category ID")

    # Browser
    headless: bool = Field(default=True, description="Run Chromium without a window")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        description="User-Agent for the browser context",
    )

    # Pagination
    market_delay: float = Field(default=2.0, description="Seconds to wait between markets")
    page_load_timeout: float = Field(default=30.0, description="Initial navigation timeout in seconds")
    row_wait_timeout: float = Field(default=10.0, description="Wait for the trends table in seconds")
    content_change_timeout: float = Field(default=15.0, description="Wait for a page advance in seconds")
    poll_interval: float = Field(default=0.25, description="Polling step while waiting for an advance")
    settle_delay: float = Field(default=1.0, description="Pause after each advance in seconds")
    max_pages: int = Field(default=20, description="Hard cap on pages per market")
    empty_page_tolerance: int = Field(default=1, description="Empty pages tolerated before stopping")

    # Output
    output_format: str = Field(default="json", description="Output format (json or csv)")
    output_dir: str = Field(default="./data", description="Directory for output files")
    output_path: Optional[str] = Field(default=None, description="Explicit output file path")
    high_score_threshold: float = Field(default=50.0, description="Score above which trends go to the report")

    # AI scoring
    ai_enabled: bool = Field(default=True, description="Enable AI relevance scoring")
    gemini_api_keys: str = Field(default="", description="Comma-separated Gemini API keys")
    gemini_model: str = Field(default="gemini-2.5-flash", description="Gemini model name")
    ai_batch_size: int = Field(default=25, description="Records per AI request")
    ai_max_retries: int = Field(default=3, description="Attempts per AI batch")
    ai_retry_delay: float = Field(default=5.0, description="Linear backoff step in seconds")
    ai_batch_delay: float = Field(default=1.5, description="Pause between AI batches in seconds")
    cache_path: str = Field(default="./data/score_cache.db", description="SQLite score cache path")

    # Supabase
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_key: str = Field(default="", description="Supabase service role key")
    supabase_table: str = Field(default="google_trends", description="Target table")
    upload_enabled: bool = Field(default=True, description="Push trends to Supabase when configured")
    upload_active_only: bool = Field(default=True, description="Only push Active trends")
    upload_extra_columns: bool = Field(
        default=False, description="Also push search_volume and score (table must have them)"
    )

    # Discord
    discord_webhook_url: str = Field(default="", description="Discord webhook URL for batch reports")

    # Scheduled mode
    schedule_interval_hours: float = Field(default=24.0, description="Hours between scheduled batches")
    health_port: int = Field(default=8080, description="Health check server port")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def country_list(self) -> List[str]:
        """Parse country codes into list."""
        return [c.strip().upper() for c in self.countries.split(",") if c.strip()]

    @property
    def api_key_list(self) -> List[str]:
        return [k.strip() for k in self.gemini_api_keys.split(",") if k.strip()]

    @property
    def markets(self) -> List[Market]:
        """Configured markets, skipping unknown codes."""
        return [COUNTRIES[c] for c in self.country_list if c in COUNTRIES]

    @property
    def unknown_countries(self) -> List[str]:
        return [c for c in self.country_list if c not in COUNTRIES]

    def pagination_policy(self) -> PaginationPolicy:
        return PaginationPolicy(
            page_load_timeout=self.page_load_timeout,
            row_wait_timeout=self.row_wait_timeout,
            content_change_timeout=self.content_change_timeout,
            poll_interval=self.poll_interval,
            settle_delay=self.settle_delay,
            max_pages=self.max_pages,
            empty_page_tolerance=self.empty_page_tolerance,
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, applying explicit overrides."""
    return Settings(**overrides)
