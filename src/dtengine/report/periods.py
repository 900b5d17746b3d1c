"""Calendar periods used to bucket report rows."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Final

from dateutil.relativedelta import relativedelta

from ..values import get_data_value, parse_to_date, to_number

_WEEK_KEY_RE: Final[re.Pattern[str]] = re.compile(r"(\d{4})-W(\d{1,2})")
_QUARTER_KEY_RE: Final[re.Pattern[str]] = re.compile(r"(\d{4})-Q(\d)")


class Breakdown(str, Enum):
    """Granularity of report periods."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"

    @classmethod
    def parse(cls, value: str | Breakdown) -> Breakdown:
        """Parse a breakdown name; `annual` is an alias of `year`."""
        if isinstance(value, Breakdown):
            return value
        name = value.strip().lower()
        if name == "annual":
            return cls.YEAR
        try:
            return cls(name)
        except ValueError as exc:
            valid = ", ".join(item.value for item in cls)
            raise ValueError(f"invalid breakdown {value}; valid values: {valid}") from exc


_STEPS: Final[dict[Breakdown, relativedelta]] = {
    Breakdown.DAY: relativedelta(days=1),
    Breakdown.WEEK: relativedelta(weeks=1),
    Breakdown.MONTH: relativedelta(months=1),
    Breakdown.QUARTER: relativedelta(months=3),
    Breakdown.YEAR: relativedelta(years=1),
}


def period_key(value: date | datetime, breakdown: Breakdown | str) -> str:
    """
    Return the key of the period containing the date.

    Keys sort chronologically: `2024-01-15` (day), `2024-W03` (ISO week,
    numbered within the ISO year), `2024-01` (month), `2024-Q1` (quarter)
    and `2024` (year).
    """
    breakdown = Breakdown.parse(breakdown)
    if breakdown == Breakdown.DAY:
        return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
    if breakdown == Breakdown.WEEK:
        iso_year, iso_week, _ = value.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    if breakdown == Breakdown.QUARTER:
        return f"{value.year:04d}-Q{(value.month - 1) // 3 + 1}"
    if breakdown == Breakdown.YEAR:
        return f"{value.year:04d}"
    return f"{value.year:04d}-{value.month:02d}"


def period_label(key: str, breakdown: Breakdown | str) -> str:
    """Return the long label of a period: `Jan`, `Week 03`, `Jan 15`, `2024-Q1`, `2024`."""
    breakdown = Breakdown.parse(breakdown)
    if breakdown == Breakdown.MONTH:
        return datetime.strptime(key + "-01", "%Y-%m-%d").strftime("%b")
    if breakdown == Breakdown.WEEK:
        match = _WEEK_KEY_RE.search(key)
        if match:
            return f"Week {int(match.group(2)):02d}"
        return re.sub(r"^.*?-W", "Week ", key)
    if breakdown == Breakdown.DAY:
        return datetime.strptime(key, "%Y-%m-%d").strftime("%b %d")
    return key


def period_label_short(key: str, breakdown: Breakdown | str) -> str:
    """Return the label with a two-digit year: `Jan 23`, `W1 23`, `2 Jan 25`, `Q1 23`, `2023`."""
    breakdown = Breakdown.parse(breakdown)
    if breakdown == Breakdown.WEEK:
        match = _WEEK_KEY_RE.search(key)
        if match:
            return f"W{int(match.group(2))} {match.group(1)[-2:]}"
        return key
    if breakdown == Breakdown.DAY:
        parsed = datetime.strptime(key, "%Y-%m-%d")
        return f"{parsed.day} {parsed.strftime('%b')} {parsed.strftime('%y')}"
    if breakdown == Breakdown.QUARTER:
        match = _QUARTER_KEY_RE.search(key)
        if match:
            return f"Q{match.group(2)} {match.group(1)[-2:]}"
        return key
    if breakdown == Breakdown.YEAR:
        return key
    return datetime.strptime(key + "-01", "%Y-%m-%d").strftime("%b %y")


def time_periods(start: Any, end: Any, breakdown: Breakdown | str) -> list[str]:
    """
    Return the sorted keys of every period between two dates, both included.

    Unparseable bounds or a start after the end yield no periods.
    """
    breakdown = Breakdown.parse(breakdown)
    start_date = parse_to_date(start)
    end_date = parse_to_date(end)
    if start_date is None or end_date is None or start_date > end_date:
        return []
    keys = set()
    current = start_date
    while current <= end_date:
        keys.add(period_key(current, breakdown))
        current = current + _STEPS[breakdown]
    keys.add(period_key(end_date, breakdown))
    return sorted(keys)


def _period_group(key: str, breakdown: Breakdown) -> tuple[int, ...]:
    """Return the position of a period within its year, used to line up years."""
    parts = key.split("-")
    if breakdown == Breakdown.DAY:
        return int(parts[1]), int(parts[2])
    return (int(re.sub(r"\D", "", parts[1])),)


def reorganize_periods_for_period_over_period(
    periods: Sequence[str],
    breakdown: Breakdown | str,
) -> list[str]:
    """
    Reorder periods so the same period of different years sits side by side.

    For example `["2024-01", "2024-02", "2025-01", "2025-02"]` becomes
    `["2024-01", "2025-01", "2024-02", "2025-02"]`. Years are simply
    sorted.
    """
    breakdown = Breakdown.parse(breakdown)
    if not periods:
        return list(periods)
    if breakdown == Breakdown.YEAR:
        return sorted(periods, key=int)
    return sorted(periods, key=lambda key: (_period_group(key, breakdown), int(key.split("-")[0])))


@dataclass(kw_only=True)
class PeriodBucket:
    """Rows of one period with their summed metrics."""

    period: str
    rows: list[Any] = field(default_factory=list)
    totals: dict[str, float] = field(default_factory=dict)


def group_by_period(
    rows: Iterable[Any],
    date_field: str,
    breakdown: Breakdown | str,
    metrics: Sequence[str],
) -> dict[str, PeriodBucket]:
    """
    Bucket rows by the period of their date field and sum the metrics.

    Rows without a parseable date are skipped, as are non-numeric metric
    values. Buckets are returned in chronological order.
    """
    breakdown = Breakdown.parse(breakdown)
    buckets: dict[str, PeriodBucket] = {}
    parsed_cache: dict[Any, datetime | None] = {}
    for row in rows:
        raw = get_data_value(row, date_field)
        if not raw:
            continue
        cache_key = raw if isinstance(raw, (str, int, float)) else repr(raw)
        if cache_key not in parsed_cache:
            parsed_cache[cache_key] = parse_to_date(raw)
        parsed = parsed_cache[cache_key]
        if parsed is None:
            continue
        key = period_key(parsed, breakdown)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = PeriodBucket(period=key, totals={metric: 0 for metric in metrics})
        bucket.rows.append(row)
        for metric in metrics:
            number = to_number(get_data_value(row, metric))
            if number is not None:
                bucket.totals[metric] += number
    return dict(sorted(buckets.items()))
