"""Monthly burn period utilities.

Snapshots are captured monthly and keyed by "YYYY-MM". Only the current
month may be written; "current" is always decided through a Clock so tests
can pin it.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Callable, Iterable, Optional

from neuron_hub.core.model import BurnPeriod, Program, Workstream


Clock = Callable[[], date]

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
MONTH_FULL = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]
_MONTH_BY_NAME = {name.lower(): i for i, name in enumerate(MONTH_FULL, start=1)}

# Programs end in November of their final fiscal year unless told otherwise.
DEFAULT_END_MONTH = 11

_DATE_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


def system_clock() -> date:
    return date.today()


def fixed_clock(day: date) -> Clock:
    def _clock() -> date:
        return day

    return _clock


def make_period(year: int, month: int) -> BurnPeriod:
    return BurnPeriod(
        date_key=f"{year}-{month:02d}",
        label=f"{MONTH_FULL[month - 1]} {year}",
        short_label=f"{MONTH_NAMES[month - 1]} '{str(year)[2:]}",
        year=year,
        month=month,
    )


def get_current_period(clock: Optional[Clock] = None) -> BurnPeriod:
    today = (clock or system_clock)()
    return make_period(today.year, today.month)


def is_current_month(date_key: str, clock: Optional[Clock] = None) -> bool:
    return date_key == get_current_period(clock).date_key


def get_monthly_periods(
    start_year: int, start_month: int, end_year: int, end_month: int
) -> list[BurnPeriod]:
    """All periods from start to end inclusive; empty when start is after end."""
    periods: list[BurnPeriod] = []
    y, m = start_year, start_month
    while y < end_year or (y == end_year and m <= end_month):
        periods.append(make_period(y, m))
        m += 1
        if m > 12:
            m = 1
            y += 1
    return periods


def parse_target_month(value: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse "November 2027" into (2027, 11). Returns None when unparseable."""
    if not value:
        return None
    parts = value.split()
    if len(parts) != 2:
        return None
    month = _MONTH_BY_NAME.get(parts[0].lower())
    try:
        year = int(parts[1])
    except ValueError:
        return None
    if month is None:
        return None
    return year, month


def parse_date_key(value: Optional[str]) -> Optional[tuple[int, int]]:
    if not value:
        return None
    match = _DATE_KEY_RE.match(value.strip())
    if not match:
        return None
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return year, month


def build_timeline(program: Program, workstreams: Optional[Iterable[Workstream]] = None) -> list[BurnPeriod]:
    """Monthly periods spanning a program.

    Start: program.start_date, else January of the first fiscal year.
    End: the latest of program.target_date, November of the last fiscal year,
    and any parseable workstream target month.
    """
    if program.start_date is not None:
        start = (program.start_date.year, program.start_date.month)
    else:
        start = (2000 + program.fy_start_year, 1)

    end = (2000 + program.fy_end_year, DEFAULT_END_MONTH)
    if program.target_date is not None:
        end = max(end, (program.target_date.year, program.target_date.month))

    for ws in workstreams if workstreams is not None else program.workstreams:
        parsed = parse_target_month(ws.target_completion_date)
        if parsed is not None:
            end = max(end, parsed)

    return get_monthly_periods(start[0], start[1], end[0], end[1])
