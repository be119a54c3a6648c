"""Tests for the Supabase sink."""

import json
from datetime import datetime

import httpx
import pytest

from trends_scraper.config import COUNTRIES, get_market_group
from trends_scraper.models import MarketResult, SearchVolume, TrendRecord, TrendStatus
from trends_scraper.output import SinkError
from trends_scraper.supabase import SupabaseSink


def results():
    return [
        MarketResult(
            market=COUNTRIES["US"],
            timestamp=datetime(2024, 5, 1),
            success=True,
            records=[
                TrendRecord(
                    title="labubu",
                    search_volume=SearchVolume(raw="200K+", magnitude=200_000, trend_delta=1000),
                    time_started="5 hours ago",
                    breakdown=["labubu doll"],
                    status=TrendStatus.ACTIVE,
                    score=95,
                ),
                TrendRecord(title="old news", status=TrendStatus.LASTED),
            ],
        ),
        MarketResult(
            market=COUNTRIES["GB"],
            timestamp=datetime(2024, 5, 1),
            success=False,
            records=[TrendRecord(title="partial", status=TrendStatus.ACTIVE)],
        ),
    ]


def test_rows_are_active_and_successful_only():
    sink = SupabaseSink("https://db.example.co", "secret")

    rows = sink.build_rows(results())

    assert rows == [{
        "country_code": "US",
        "market_group": "north_america",
        "title": "labubu",
        "search_volume_base": "200K+",
        "trend_percentage": 1000,
        "time_started": "5 hours ago",
        "breakdown": ["labubu doll"],
        "status": "active",
    }]


def test_extra_columns_are_opt_in():
    sink = SupabaseSink("https://db.example.co", "secret", extra_columns=True)

    row = sink.build_rows(results())[0]

    assert row["search_volume"] == 200_000
    assert row["score"] == 95
    assert row["market_group"] == "north_america"


@pytest.mark.parametrize("code, group", [
    ("us", "north_america"),
    ("BR", "latin_america"),
    ("GB", "europe"),
    ("JP", "asia_pacific"),
    ("SA", "middle_east_africa"),
    ("ZZ", "other"),
])
def test_market_groups(code, group):
    assert get_market_group(code) == group


def test_every_market_has_a_group():
    assert all(get_market_group(code) != "other" for code in COUNTRIES)


def test_all_statuses_when_not_active_only():
    sink = SupabaseSink("https://db.example.co", "secret", active_only=False)

    assert [r["status"] for r in sink.build_rows(results())] == ["active", "lasted"]


def test_configured():
    assert SupabaseSink("https://db.example.co", "secret").configured
    assert not SupabaseSink("", "secret").configured


@pytest.mark.asyncio
async def test_upsert_request():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201)

    sink = SupabaseSink(
        "https://db.example.co/", "secret", table="trends", transport=httpx.MockTransport(handler)
    )

    count = await sink.upsert(results())

    assert count == 1
    request = seen[0]
    assert request.url.path == "/rest/v1/trends"
    assert request.url.params["on_conflict"] == "country_code,title"
    assert request.headers["apikey"] == "secret"
    assert request.headers["Authorization"] == "Bearer secret"
    assert "resolution=ignore-duplicates" in request.headers["Prefer"]
    assert json.loads(request.content)[0]["title"] == "labubu"


@pytest.mark.asyncio
async def test_nothing_to_upload_skips_request():
    def handler(request):
        raise AssertionError("no request expected")

    sink = SupabaseSink("https://db.example.co", "secret", transport=httpx.MockTransport(handler))

    assert await sink.upsert(results()[1:]) == 0


@pytest.mark.asyncio
async def test_rejected_upsert_raises():
    transport = httpx.MockTransport(lambda request: httpx.Response(401, text="bad key"))
    sink = SupabaseSink("https://db.example.co", "secret", transport=transport)

    with pytest.raises(SinkError, match="401"):
        await sink.upsert(results())


@pytest.mark.asyncio
async def test_network_failure_raises():
    def handler(request):
        raise httpx.ConnectError("refused")

    sink = SupabaseSink("https://db.example.co", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(SinkError):
        await sink.upsert(results())
