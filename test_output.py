"""Tests for file output."""

from datetime import datetime

import pytest

from trends_scraper.config import COUNTRIES
from trends_scraper.models import MarketResult, SearchVolume, TrendRecord, TrendStatus
from trends_scraper.output import (
    SinkError,
    generate_output_path,
    read_rows,
    write_high_score_report,
    write_results,
    write_rows,
)


def sample_results():
    return [
        MarketResult(
            market=COUNTRIES["US"],
            timestamp=datetime(2024, 5, 1, 9, 30),
            success=True,
            records=[
                TrendRecord(
                    title="labubu",
                    search_volume=SearchVolume(raw="200K+", magnitude=200_000, trend_delta=1000),
                    time_started="5 hours ago",
                    breakdown=["labubu doll", 'pop "mart", inc'],
                    status=TrendStatus.ACTIVE,
                    score=95,
                ),
                TrendRecord(title="resume template", score=None),
            ],
        ),
        MarketResult(
            market=COUNTRIES["JP"],
            timestamp=datetime(2024, 5, 1, 9, 35),
            success=True,
            records=[TrendRecord(title="ちいかわ", score=72.5)],
        ),
        MarketResult(
            market=COUNTRIES["GB"],
            timestamp=datetime(2024, 5, 1, 9, 40),
            success=False,
            error="timed out",
        ),
    ]


@pytest.mark.parametrize("fmt", ["json", "csv"])
def test_written_file_reads_back(tmp_path, fmt):
    path = write_results(sample_results(), tmp_path / f"out.{fmt}", fmt)

    rows = read_rows(path)

    assert [(r.market_code, r.title) for r in rows] == [
        ("US", "labubu"),
        ("US", "resume template"),
        ("JP", "ちいかわ"),
    ]
    first = rows[0]
    assert first.breakdown == ["labubu doll", 'pop "mart", inc']
    assert first.volume_magnitude == 200_000
    assert first.status is TrendStatus.ACTIVE
    assert first.score == 95
    assert rows[1].score is None
    assert first.to_record().search_volume.trend_delta == 1000


def test_json_is_one_object_per_line(tmp_path):
    path = write_results(sample_results(), tmp_path / "out.json", "json")

    lines = path.read_text(encoding="utf-8").splitlines()

    assert len(lines) == 3
    assert lines[0].startswith("{") and lines[0].endswith("}")


def test_csv_empty_score_is_blank(tmp_path):
    path = write_results(sample_results(), tmp_path / "out.csv", "csv")

    lines = path.read_text(encoding="utf-8").splitlines()

    assert lines[0].startswith("market_code,market_name,timestamp,title")
    assert lines[2].endswith(",Lasted,")


def test_high_score_report_sorted_and_filtered(tmp_path):
    path = write_high_score_report(sample_results(), tmp_path / "high.csv", threshold=50)

    rows = read_rows(path)

    assert [r.title for r in rows] == ["labubu", "ちいかわ"]


def test_high_score_report_skipped_when_nothing_qualifies(tmp_path):
    assert write_high_score_report(sample_results(), tmp_path / "high.csv", threshold=99) is None
    assert not (tmp_path / "high.csv").exists()


def test_unwritable_path_raises_sink_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(SinkError):
        write_rows([], blocker / "out.json", "json")


def test_generated_path_shape(tmp_path):
    path = generate_output_path(str(tmp_path), "csv", label="US")

    assert path.parent == tmp_path
    assert path.name.startswith("google-trends-us-")
    assert path.suffix == ".csv"
