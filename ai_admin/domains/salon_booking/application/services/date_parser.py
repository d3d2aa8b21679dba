"""Date and time parsing for command parameters."""

import datetime as dt
import re

from ai_admin.core.domain import ValidationException

RELATIVE_DAYS = {
    "сегодня": 0,
    "today": 0,
    "завтра": 1,
    "tomorrow": 1,
    "послезавтра": 2,
    "day after tomorrow": 2,
}

TIME_PATTERN = re.compile(r"(\d{1,2}):(\d{2})")
DAY_MONTH_PATTERN = re.compile(r"^(\d{1,2})\.(\d{1,2})(?:\.(\d{2,4}))?$")


def parse_date(value: str, today: dt.date) -> dt.date:
    """
    Parse a date mention.

    Accepts relative words (сегодня, завтра, послезавтра, today, tomorrow),
    ISO ``YYYY-MM-DD`` and ``dd.mm[.yyyy]``. A ``dd.mm`` already in the past
    rolls over to next year.

    Raises:
        ValidationException: Unrecognized format
    """
    text = value.strip().lower()

    if text in RELATIVE_DAYS:
        return today + dt.timedelta(days=RELATIVE_DAYS[text])

    try:
        return dt.date.fromisoformat(text)
    except ValueError:
        pass

    match = DAY_MONTH_PATTERN.match(text)
    if match:
        day, month, year = match.groups()
        try:
            if year:
                year_value = int(year) + 2000 if len(year) == 2 else int(year)
                return dt.date(year_value, int(month), int(day))
            candidate = dt.date(today.year, int(month), int(day))
            if candidate < today:
                candidate = candidate.replace(year=today.year + 1)
            return candidate
        except ValueError as e:
            raise ValidationException(f"Invalid date: {value}", field="date") from e

    raise ValidationException(f"Unrecognized date: {value}", field="date")


def parse_time(value: str) -> dt.time:
    match = TIME_PATTERN.search(value)
    if not match:
        raise ValidationException(f"Unrecognized time: {value}", field="time")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationException(f"Invalid time: {value}", field="time")
    return dt.time(hour, minute)


def parse_datetime(value: str, today: dt.date) -> dt.datetime:
    """
    Parse ``YYYY-MM-DD HH:MM``, ISO ``YYYY-MM-DDTHH:MM[:SS]`` or ``<date word> HH:MM``.

    Raises:
        ValidationException: No time or unrecognized date
    """
    text = value.strip()
    time_match = TIME_PATTERN.search(text)
    if not time_match:
        raise ValidationException(f"Unrecognized date and time: {value}", field="datetime")

    try:
        return dt.datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        pass

    date_part = (text[: time_match.start()] + text[time_match.end() :]).strip(" ,в")
    day = parse_date(date_part, today) if date_part else today
    return dt.datetime.combine(day, parse_time(time_match.group(0)))
