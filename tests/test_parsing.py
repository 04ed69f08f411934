"""Tests for the boundary parser: raw records and CSV text into a TimeSeries."""

import math
from datetime import date

import pytest

from stockfactor.analysis.models import PricePoint, TimeSeries
from stockfactor.analysis.parsing import parse_csv, parse_date, parse_record, parse_records
from stockfactor.errors import InvalidRecord


class TestParseDate:
    def test_iso_date(self):
        assert parse_date("2024-03-05") == date(2024, 3, 5)

    def test_us_date(self):
        assert parse_date("3/5/2024") == date(2024, 3, 5)

    def test_iso_datetime_drops_time(self):
        assert parse_date("2024-03-05T15:30:00Z") == date(2024, 3, 5)

    def test_date_object_passthrough(self):
        assert parse_date(date(2024, 1, 2)) == date(2024, 1, 2)

    @pytest.mark.parametrize("raw", ["", None, "yesterday", "2024-13-01"])
    def test_rejects_garbage(self, raw):
        with pytest.raises(ValueError):
            parse_date(raw)


class TestParseRecord:
    def test_case_insensitive_keys(self):
        point = parse_record(
            {"Date": "2024-01-02", "Open": "10", "HIGH": "11", "low": "9.5",
             "Close": "10.5", "Volume": "1,200"}
        )
        assert point == PricePoint(
            date=date(2024, 1, 2), close=10.5, open=10.0, high=11.0, low=9.5, volume=1200.0
        )

    def test_time_alias_and_optional_fields(self):
        point = parse_record({"time": "2024-01-02", "close": 7})
        assert point.date == date(2024, 1, 2)
        assert point.open is None
        assert point.volume is None

    def test_empty_close_kept_as_nan(self):
        point = parse_record({"date": "2024-01-02", "open": "1", "close": ""})
        assert point.date == date(2024, 1, 2)
        assert math.isnan(point.close)
        assert point.open == 1.0

    def test_no_close_field(self):
        with pytest.raises(InvalidRecord, match="missing close"):
            parse_record({"date": "2024-01-02", "open": "1"})

    def test_negative_price(self):
        with pytest.raises(InvalidRecord) as info:
            parse_record({"date": "2024-01-02", "close": "-3"})
        assert info.value.date == "2024-01-02"
        assert "negative" in info.value.reason

    def test_non_finite_price(self):
        with pytest.raises(InvalidRecord, match="non-finite"):
            parse_record({"date": "2024-01-02", "close": "nan"})

    def test_bad_date(self):
        with pytest.raises(InvalidRecord, match="unparseable date"):
            parse_record({"date": "someday", "close": "3"})


class TestParseRecords:
    def test_sorts_ascending(self):
        result = parse_records([
            {"date": "2024-01-03", "close": 3},
            {"date": "2024-01-01", "close": 1},
            {"date": "2024-01-02", "close": 2},
        ])
        assert result.series.closes == [1.0, 2.0, 3.0]
        assert result.skipped == ()

    def test_bad_records_skipped_not_fatal(self):
        result = parse_records([
            {"date": "2024-01-01", "close": 1},
            {"date": "not a date", "close": 2},
            {"date": "2024-01-03", "close": "abc"},
            {"date": "2024-01-04", "close": 4},
        ])
        assert len(result.series) == 2
        assert [s.date for s in result.skipped] == ["not a date", "2024-01-03"]

    def test_duplicate_dates_first_wins(self):
        result = parse_records([
            {"date": "2024-01-01", "close": 1},
            {"date": "01/01/2024", "close": 99},
        ])
        assert result.series.closes == [1.0]
        assert result.skipped[0].reason == "duplicate date"

    def test_empty_close_keeps_date(self):
        result = parse_records([
            {"date": "2024-01-02", "close": "100"},
            {"date": "2024-01-03", "close": ""},
            {"date": "2024-01-04", "close": "104"},
        ])
        assert result.series.dates == [date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4)]
        assert math.isnan(result.series[1].close)
        assert result.skipped == ()


class TestParseCsv:
    def test_vendor_export_columns(self):
        text = (
            ",ticket,time,open,high,low,close,volume\n"
            "0,ACME,2024-01-02,10,11,9,10.5,1000\n"
            "1,ACME,2024-01-03,10.5,12,10,11.5,1500\n"
        )
        result = parse_csv(text)
        assert result.series.dates == [date(2024, 1, 2), date(2024, 1, 3)]
        assert result.series[1].volume == 1500.0

    def test_blank_lines_ignored(self):
        text = "date,close\n2024-01-02,5\n\n2024-01-03,6\n"
        assert len(parse_csv(text).series) == 2

    def test_extra_field_line_skipped(self):
        text = (
            "date,open,high,low,close,volume\n"
            "2024-01-02,1,2,0.5,1.5,100\n"
            "2024-01-03,1,2,0.5,1.6,100,EXTRA\n"
            "2024-01-04,1,2,0.5,1.7,100\n"
        )
        result = parse_csv(text)
        assert result.series.dates == [date(2024, 1, 2), date(2024, 1, 4)]
        assert len(result.skipped) == 1
        assert result.skipped[0].date == "2024-01-03"
        assert "fields" in result.skipped[0].reason

    def test_bad_line_in_vendor_export(self):
        text = (
            ",ticket,time,open,high,low,close,volume\n"
            "0,ACME,2024-01-02,10,11,9,10.5,1000\n"
            "1,ACME,2024-01-03,10.5,12,10,11.5,1500,x,y\n"
        )
        result = parse_csv(text)
        assert len(result.series) == 1
        assert result.skipped[0].date == "2024-01-03"

    def test_empty_close_cell(self):
        text = "date,close\n2024-01-02,5\n2024-01-03,\n2024-01-04,6\n"
        result = parse_csv(text)
        assert len(result.series) == 3
        assert math.isnan(result.series[1].close)

    def test_empty_input(self):
        result = parse_csv("")
        assert len(result.series) == 0


class TestTimeSeries:
    def test_rejects_unordered_dates(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            TimeSeries((
                PricePoint(date(2024, 1, 2), 1.0),
                PricePoint(date(2024, 1, 1), 1.0),
            ))

    def test_rejects_duplicate_dates(self):
        with pytest.raises(ValueError):
            TimeSeries((
                PricePoint(date(2024, 1, 2), 1.0),
                PricePoint(date(2024, 1, 2), 2.0),
            ))
