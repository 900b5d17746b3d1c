"""Date parsing and calendar-month helpers."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Final

from dateutil import parser as dateparser
from dateutil.relativedelta import relativedelta

# Timestamps (epoch milliseconds) accepted as dates: 1980-01-01 to 2100-01-01
MIN_TIMESTAMP: Final[int] = 315532800000
MAX_TIMESTAMP: Final[int] = 4102444800000

MIN_YEAR: Final[int] = 1900
MAX_YEAR: Final[int] = 2100

_MONTHS = "(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)"

DATE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^\d{4}-\d{2}-\d{2}$"),
    re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}"),
    re.compile(r"^\d{4}/\d{2}/\d{2}$"),
    re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"),
    re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"),
    re.compile(r"^\d{1,2}\.\d{1,2}\.\d{4}$"),
    re.compile(rf"^{_MONTHS}\s+\d{{1,2}},?\s+\d{{4}}$", re.IGNORECASE),
    re.compile(rf"^\d{{1,2}}\s+{_MONTHS}\s+\d{{4}}$", re.IGNORECASE),
)

_INTEGER_RE = re.compile(r"^-?\d+$")
_DECIMAL_RE = re.compile(r"^-?\d+\.?\d*$")
_YEAR_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# Fields missing from a parsed string default to the first day of the month
_PARSE_DEFAULT: Final[datetime] = datetime(2000, 1, 1)


def parse_to_date(value: Any) -> datetime | None:
    """
    Parse a cell value into a naive datetime.

    Accepts datetime and date objects, epoch milliseconds and date
    strings. Empty values, zero and unparseable strings yield None.
    Aware datetimes are converted to UTC before dropping the zone.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text in ("", "0"):
            return None
        return _parse_date_string(text)
    return None


def _parse_date_string(text: str) -> datetime | None:
    try:
        return _naive(datetime.fromisoformat(text))
    except ValueError:
        pass
    # Bare numbers are never dates, unlike what dateutil would do with them
    if _DECIMAL_RE.match(text):
        return None
    try:
        return _naive(dateparser.parse(text, default=_PARSE_DEFAULT))
    except (ValueError, OverflowError):
        return None


def _naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_epoch_ms(value: Any) -> int:
    """Return the epoch milliseconds of a date-like value, zero when missing."""
    parsed = parse_to_date(value)
    if parsed is None:
        return 0
    return int(parsed.replace(tzinfo=timezone.utc).timestamp() * 1000)


def is_date_like(value: Any) -> bool:
    """
    Return whether a value looks like a date.

    Numbers qualify only within the accepted timestamp range. Strings
    qualify when they match a known date pattern (strings containing
    letters must) or contain date separators, and parse to a year
    between 1900 and 2100. Pure integer strings never qualify.
    """
    if value is None or isinstance(value, bool):
        return False
    if value == 0 or value == "0" or value == "":
        return False
    if isinstance(value, (datetime, date)):
        return True
    if isinstance(value, (int, float)):
        return MIN_TIMESTAMP <= value <= MAX_TIMESTAMP
    if not isinstance(value, str):
        return False

    text = value.strip()
    if text == "" or _INTEGER_RE.match(text):
        return False
    has_letters = re.search(r"[a-zA-Z]", text) is not None
    matches_pattern = any(pattern.match(text) for pattern in DATE_PATTERNS)
    if has_letters and not matches_pattern:
        return False

    parsed = _parse_date_string(text)
    if parsed is None or not MIN_YEAR <= parsed.year <= MAX_YEAR:
        return False
    if matches_pattern:
        return True
    has_separators = re.search(r"[/\-.]", text) is not None
    return not has_letters and has_separators and not _DECIMAL_RE.match(text)


def is_year_month(value: Any) -> bool:
    """Return whether the value is a `YYYY-MM` string."""
    return isinstance(value, str) and len(value) == 7 and _YEAR_MONTH_RE.match(value) is not None


def has_year_month_prefix(name: Any) -> bool:
    """Return whether the value starts with `YYYY-MM_`."""
    if not isinstance(name, str) or len(name) < 8:
        return False
    return name[7] == "_" and is_year_month(name[:7])


def extract_year_month(value: Any) -> str | None:
    """Return the `YYYY-MM` of a date-like value, or None."""
    if not value:
        return None
    if is_year_month(value):
        return value
    parsed = parse_to_date(value)
    return None if parsed is None else parsed.strftime("%Y-%m")


def _month_start(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return date(value.year, value.month, 1)
    if isinstance(value, date):
        return date(value.year, value.month, 1)
    if is_year_month(value):
        return date(int(value[:4]), int(value[5:]), 1)
    parsed = parse_to_date(value)
    if parsed is None:
        raise ValueError(f"Invalid month format: {value} (expected YYYY-MM or YYYY-MM-DD)")
    return date(parsed.year, parsed.month, 1)


def generate_month_range(start: date | datetime | str, end: date | datetime | str) -> list[str]:
    """
    Return the inclusive, chronological list of `YYYY-MM` keys between
    the months of `start` and `end`. Returns an empty list when start
    is after end.
    """
    current = _month_start(start)
    last = _month_start(end)
    months: list[str] = []
    while current <= last:
        months.append(current.strftime("%Y-%m"))
        current += relativedelta(months=1)
    return months


def month_bounds(key: str) -> tuple[date, date]:
    """Return the first and last day of the `YYYY-MM` month."""
    first = _month_start(key)
    last_day = calendar.monthrange(first.year, first.month)[1]
    return first, first.replace(day=last_day)


@dataclass(frozen=True, kw_only=True)
class MonthRange:
    """
    Inclusive range of calendar months.

    Attributes:
        start: first day of the first month
        end: first day of the last month
    """

    start: date
    end: date

    @classmethod
    def of(cls, start: date | datetime | str, end: date | datetime | str) -> MonthRange:
        """Build a range from two month-like values, without reordering them."""
        return cls(start=_month_start(start), end=_month_start(end))

    @classmethod
    def single(cls, key: str) -> MonthRange:
        """Build the range covering only the given `YYYY-MM` month."""
        month = _month_start(key)
        return cls(start=month, end=month)

    def start_key(self) -> str:
        return self.start.strftime("%Y-%m")

    def end_key(self) -> str:
        return self.end.strftime("%Y-%m")

    def keys(self) -> list[str]:
        """Return the chronological list of `YYYY-MM` partition keys."""
        return generate_month_range(self.start, self.end)

    def variables(self) -> dict[str, str]:
        """Return the `startDate`/`endDate` query variables for the range."""
        return month_range_variables(self)

    def __str__(self) -> str:
        return f"{self.start_key()}..{self.end_key()}"


def month_range_variables(month_range: MonthRange | None) -> dict[str, str]:
    """
    Return `startDate` (first day of the earlier month) and `endDate`
    (last day of the later month) for the given range.
    """
    if month_range is None:
        return {}
    earlier, later = sorted((month_range.start, month_range.end))
    _, last = month_bounds(later.strftime("%Y-%m"))
    return {"startDate": earlier.isoformat(), "endDate": last.isoformat()}
