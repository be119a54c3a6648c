"""Line-delimited file output (JSON Lines or CSV) and the matching reader."""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from .models import MarketResult, SearchVolume, TrendRecord, TrendStatus

logger = logging.getLogger(__name__)


class SinkError(Exception):
    """Collected trends could not be written."""


class OutputRow(BaseModel):
    """One record as it appears in an output file."""

    market_code: str
    market_name: str = ""
    timestamp: datetime
    title: str
    search_volume: str = ""
    volume_magnitude: int = 0
    trend_delta: int = 0
    time_started: str = ""
    breakdown: List[str] = Field(default_factory=list)
    status: TrendStatus = TrendStatus.LASTED
    score: Optional[float] = None

    @classmethod
    def from_record(cls, result: MarketResult, record: TrendRecord) -> "OutputRow":
        return cls(
            market_code=result.market.code,
            market_name=result.market.name,
            timestamp=result.timestamp,
            title=record.title,
            search_volume=record.search_volume.raw,
            volume_magnitude=record.search_volume.magnitude,
            trend_delta=record.search_volume.trend_delta,
            time_started=record.time_started,
            breakdown=list(record.breakdown),
            status=record.status,
            score=record.score,
        )

    def to_record(self) -> TrendRecord:
        return TrendRecord(
            title=self.title,
            search_volume=SearchVolume(
                raw=self.search_volume,
                magnitude=self.volume_magnitude,
                trend_delta=self.trend_delta,
            ),
            time_started=self.time_started,
            breakdown=list(self.breakdown),
            status=self.status,
            score=self.score,
        )


CSV_FIELDS = list(OutputRow.model_fields)


def generate_output_path(output_dir: str, fmt: str, label: str = "all") -> Path:
    """data/google-trends-all-2024-05-01T09-00-00.json"""
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    return Path(output_dir) / f"google-trends-{label.lower()}-{timestamp}.{fmt}"


def rows_from_results(results: Iterable[MarketResult]) -> List[OutputRow]:
    return [
        OutputRow.from_record(result, record)
        for result in results
        for record in result.records
    ]


def _csv_line(row: OutputRow) -> dict:
    data = row.model_dump(mode="json")
    data["breakdown"] = json.dumps(row.breakdown, ensure_ascii=False)
    data["score"] = "" if row.score is None else row.score
    return data


def write_rows(rows: Sequence[OutputRow], path: Path, fmt: str) -> Path:
    """
    Write rows as JSON Lines ("json") or CSV ("csv").

    Raises:
        SinkError: the file could not be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            if fmt == "json":
                for row in rows:
                    f.write(row.model_dump_json() + "\n")
            elif fmt == "csv":
                writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
                writer.writeheader()
                for row in rows:
                    writer.writerow(_csv_line(row))
            else:
                raise SinkError(f"Unsupported output format: {fmt}")
    except OSError as e:
        raise SinkError(f"Could not write {path}: {e}") from e

    logger.info(f"Wrote {len(rows)} trends to {path}")
    return path


def write_results(results: Sequence[MarketResult], path: Path, fmt: str) -> Path:
    """Write every record of every market result."""
    return write_rows(rows_from_results(results), path, fmt)


def write_high_score_report(
    results: Sequence[MarketResult], path: Path, threshold: float
) -> Optional[Path]:
    """CSV of trends scoring above threshold, best first. None when there are none."""
    rows = [row for row in rows_from_results(results) if row.score is not None and row.score > threshold]
    if not rows:
        logger.info(f"No trends scored above {threshold:g}, skipping high-score report")
        return None
    rows.sort(key=lambda r: r.score, reverse=True)
    return write_rows(rows, path, "csv")


def read_rows(path: Path, fmt: Optional[str] = None) -> List[OutputRow]:
    """Read a file written by write_rows. Format defaults to the file suffix."""
    path = Path(path)
    fmt = fmt or path.suffix.lstrip(".")

    rows = []
    with open(path, "r", encoding="utf-8", newline="") as f:
        if fmt == "json":
            for line in f:
                if line.strip():
                    rows.append(OutputRow.model_validate_json(line))
        elif fmt == "csv":
            for data in csv.DictReader(f):
                data["breakdown"] = json.loads(data["breakdown"] or "[]")
                data["score"] = data["score"] or None
                try:
                    rows.append(OutputRow.model_validate(data))
                except ValidationError as e:
                    logger.warning(f"Skipping unreadable row in {path}: {e}")
        else:
            raise ValueError(f"Unsupported output format: {fmt}")
    return rows
