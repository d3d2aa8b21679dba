"""Unit tests for date and time parsing of command parameters."""

import datetime as dt

import pytest

from ai_admin.core.domain import ValidationException
from ai_admin.domains.salon_booking.application.services.date_parser import (
    parse_date,
    parse_datetime,
    parse_time,
)

TODAY = dt.date(2024, 3, 10)


class TestParseDate:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("сегодня", dt.date(2024, 3, 10)),
            ("Завтра", dt.date(2024, 3, 11)),
            ("послезавтра", dt.date(2024, 3, 12)),
            ("tomorrow", dt.date(2024, 3, 11)),
            ("2024-04-01", dt.date(2024, 4, 1)),
            ("15.03", dt.date(2024, 3, 15)),
            ("15.03.2025", dt.date(2025, 3, 15)),
            ("1.4.24", dt.date(2024, 4, 1)),
        ],
    )
    def test_formats(self, value: str, expected: dt.date) -> None:
        assert parse_date(value, TODAY) == expected

    def test_past_day_month_rolls_to_next_year(self) -> None:
        assert parse_date("05.01", TODAY) == dt.date(2025, 1, 5)

    @pytest.mark.parametrize("value", ["someday", "31.02", "2024-13-01"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValidationException) as exc_info:
            parse_date(value, TODAY)
        assert exc_info.value.code == "VALIDATION_ERROR"


class TestParseTime:
    def test_extracts_time(self) -> None:
        assert parse_time("в 9:30") == dt.time(9, 30)

    @pytest.mark.parametrize("value", ["noon", "25:00", "10:75"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValidationException):
            parse_time(value)


class TestParseDatetime:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-01-02 14:00", dt.datetime(2024, 1, 2, 14, 0)),
            ("2024-01-02T14:00:00", dt.datetime(2024, 1, 2, 14, 0)),
            ("2024-01-02T14:00:00+03:00", dt.datetime(2024, 1, 2, 14, 0)),
            ("завтра 15:30", dt.datetime(2024, 3, 11, 15, 30)),
            ("завтра в 15:30", dt.datetime(2024, 3, 11, 15, 30)),
            ("20.03, 11:00", dt.datetime(2024, 3, 20, 11, 0)),
            ("16:00", dt.datetime(2024, 3, 10, 16, 0)),
        ],
    )
    def test_formats(self, value: str, expected: dt.datetime) -> None:
        assert parse_datetime(value, TODAY) == expected

    def test_date_without_time_rejected(self) -> None:
        with pytest.raises(ValidationException):
            parse_datetime("2024-01-02", TODAY)
