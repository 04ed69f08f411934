"""Boundary parsing — raw OHLCV records and CSV text into a ``TimeSeries``.

This is the single validating step between untyped upstream data and the
typed pipeline.  Bad records are skipped and reported, never fatal.
"""

import io
import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

from stockfactor.analysis.models import PricePoint, TimeSeries
from stockfactor.errors import InvalidRecord, SkippedRecord

logger = logging.getLogger("stockfactor.parsing")

_HEADER_ALIASES: dict[str, str] = {
    "date": "date",
    "time": "date",
    "open": "open",
    "high": "high",
    "low": "low",
    "close": "close",
    "volume": "volume",
}

# Columns some vendor exports carry that carry no price information.
_IGNORED_HEADERS = {"", "ticket"}

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


@dataclass(frozen=True)
class ParseResult:
    """A validated series plus the records that were left out."""

    series: TimeSeries
    skipped: tuple[SkippedRecord, ...] = ()


def parse_date(raw: Any) -> date:
    """Parse ``YYYY-MM-DD``, ``MM/DD/YYYY`` or an ISO-8601 date-time.

    Raises ``ValueError`` when the value is not a recognisable date.
    """
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if raw is None:
        raise ValueError("missing date")

    text = str(raw).strip()
    if not text:
        raise ValueError("missing date")

    m = _ISO_DATE.match(text)
    if m:
        year, month, day = (int(g) for g in m.groups())
        return date(year, month, day)

    m = _US_DATE.match(text)
    if m:
        month, day, year = (int(g) for g in m.groups())
        return date(year, month, day)

    # "2024-01-05T00:00:00Z" and friends
    return datetime.fromisoformat(text.replace("Z", "+00:00")).date()


def _parse_number(raw: Any, field_name: str, date_label: str) -> Optional[float]:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip().replace(",", "")
        if raw == "":
            return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise InvalidRecord(date_label, f"unparseable {field_name} '{raw}'") from None
    if not math.isfinite(value):
        raise InvalidRecord(date_label, f"non-finite {field_name}")
    if value < 0:
        raise InvalidRecord(date_label, f"negative {field_name} {value}")
    return value


def parse_record(record: Mapping[str, Any]) -> PricePoint:
    """Validate one raw record (keys are matched case-insensitively).

    An empty close cell gives a point with a NaN close, so the date stays
    in the series and the indicators skip it.  Raises ``InvalidRecord`` for
    a missing/unparseable date, a record with no close field at all, an
    unparseable or non-finite value, or a negative price or volume.
    """
    fields: dict[str, Any] = {}
    for key, value in record.items():
        mapped = _HEADER_ALIASES.get(str(key).strip().lower())
        if mapped is not None and mapped not in fields:
            fields[mapped] = value

    raw_date = fields.get("date")
    date_label = "" if raw_date is None else str(raw_date).strip()
    try:
        day = parse_date(raw_date)
    except ValueError as exc:
        raise InvalidRecord(date_label, f"unparseable date ({exc})") from None

    if "close" not in fields:
        raise InvalidRecord(date_label, "missing close")
    close = _parse_number(fields["close"], "close", date_label)
    if close is None:
        close = math.nan

    return PricePoint(
        date=day,
        close=close,
        open=_parse_number(fields.get("open"), "open", date_label),
        high=_parse_number(fields.get("high"), "high", date_label),
        low=_parse_number(fields.get("low"), "low", date_label),
        volume=_parse_number(fields.get("volume"), "volume", date_label),
    )


def parse_records(records: Iterable[Mapping[str, Any]]) -> ParseResult:
    """Parse raw records into a date-ordered ``TimeSeries``.

    Invalid records and repeated dates are skipped (the first occurrence
    of a date wins) and reported in ``ParseResult.skipped``.
    """
    by_date: dict[date, PricePoint] = {}
    skipped: list[SkippedRecord] = []

    for record in records:
        try:
            point = parse_record(record)
        except InvalidRecord as exc:
            logger.warning("Skipping record %s", exc)
            skipped.append(SkippedRecord.from_error(exc))
            continue

        if point.date in by_date:
            label = point.date.isoformat()
            logger.warning("Skipping duplicate record for %s", label)
            skipped.append(SkippedRecord(date=label, reason="duplicate date"))
            continue
        by_date[point.date] = point

    points = tuple(by_date[d] for d in sorted(by_date))
    return ParseResult(series=TimeSeries(points), skipped=tuple(skipped))


def parse_csv(text: str) -> ParseResult:
    """Parse CSV text with a header row (``date,open,high,low,close,volume``).

    ``time`` is accepted for ``date``; index, ``ticket`` and unknown columns
    are ignored.  Every cell is read as text and validated per record.
    Lines with more fields than the header are skipped and reported like
    any other bad record.
    """
    if not text.strip():
        return ParseResult(series=TimeSeries())

    bad_lines: list[SkippedRecord] = []

    def _skip_line(fields: list[str]) -> None:
        label = _line_date(fields)
        logger.warning("Skipping CSV line for %s: %d fields", label or "?", len(fields))
        bad_lines.append(
            SkippedRecord(date=label, reason=f"wrong number of fields ({len(fields)})")
        )
        return None

    df = pd.read_csv(
        io.StringIO(text),
        dtype=str,
        keep_default_na=False,
        engine="python",
        on_bad_lines=_skip_line,
    )
    df = df.fillna("")
    df.columns = [str(c).strip() for c in df.columns]
    keep = [
        c for c in df.columns
        if c.lower() not in _IGNORED_HEADERS and not c.startswith("Unnamed:")
    ]
    result = parse_records(df[keep].to_dict("records"))
    return ParseResult(series=result.series, skipped=tuple(bad_lines) + result.skipped)


def _line_date(fields: list[str]) -> str:
    # first cell that reads as a date; vendor exports lead with an index
    for cell in fields:
        try:
            parse_date(cell)
        except ValueError:
            continue
        return str(cell).strip()
    return ""
