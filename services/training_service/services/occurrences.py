"""Calendar occurrences of a recurring training.

Everything here works on plain ``date`` values, so a rule and a window always
produce the same dates no matter where or when the code runs.

Cadence is anchored on the first matching weekday on or after ``valid_from``
(or on or after the window start for open-ended rules), so biweekly and
monthly trainings land on the same dates for every window that overlaps them.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional, Union

from libs.common.datetime_utils import to_calendar_date
from libs.common.errors import InvalidArgument
from services.training_service.models import DayOfWeek, RecurrenceInterval

DateLike = Union[date, datetime]

_STEP_DAYS = {
    RecurrenceInterval.WEEKLY: 7,
    RecurrenceInterval.BIWEEKLY: 14,
}


def next_weekday(day: date, target: DayOfWeek) -> date:
    """First date on or after ``day`` that falls on ``target``."""
    return day + timedelta(days=(int(target) - day.weekday()) % 7)


def _monthly_occurrence(anchor: date, months: int, target: DayOfWeek) -> date:
    """Occurrence ``months`` calendar months after ``anchor``.

    Steps to the anchor's day-of-month (clamped to the month length) and moves
    forward to the target weekday. If that would spill into the next month the
    last matching weekday of the month is used instead, so every month gets
    exactly one date.
    """
    year, month0 = divmod(anchor.year * 12 + anchor.month - 1 + months, 12)
    month = month0 + 1
    days_in_month = calendar.monthrange(year, month)[1]
    candidate = date(year, month, min(anchor.day, days_in_month))
    aligned = next_weekday(candidate, target)
    if aligned.month != month:
        aligned -= timedelta(days=7)
    return aligned


def _iter_from(
    anchor: date, recurrence: RecurrenceInterval, target: DayOfWeek, not_before: date
) -> Iterator[date]:
    if recurrence == RecurrenceInterval.ONCE:
        yield anchor
        return

    if recurrence == RecurrenceInterval.MONTHLY:
        # Skip whole months that end before the window starts
        months = max(
            0,
            (not_before.year - anchor.year) * 12 + not_before.month - anchor.month - 1,
        )
        while True:
            yield _monthly_occurrence(anchor, months, target)
            months += 1

    step = _STEP_DAYS[recurrence]
    current = anchor
    if current < not_before:
        skipped = -(-(not_before - current).days // step)
        current += timedelta(days=skipped * step)
    while True:
        yield current
        current += timedelta(days=step)


def calculate_occurrences(
    day_of_week: DayOfWeek,
    recurrence: RecurrenceInterval,
    start: DateLike,
    end: DateLike,
    valid_from: Optional[DateLike] = None,
    valid_until: Optional[DateLike] = None,
) -> List[date]:
    """Dates in ``[start, end]`` on which the rule occurs, ascending.

    Raises ``InvalidArgument`` when the window ends before it starts. An
    inverted validity window yields no dates.
    """
    start = to_calendar_date(start)
    end = to_calendar_date(end)
    if end < start:
        raise InvalidArgument(
            "invalid_window", f"Window end {end} is before start {start}"
        )

    valid_from = to_calendar_date(valid_from) if valid_from else None
    valid_until = to_calendar_date(valid_until) if valid_until else None
    if valid_from and valid_until and valid_from > valid_until:
        return []

    target = DayOfWeek(day_of_week)
    recurrence = RecurrenceInterval(recurrence)
    anchor = next_weekday(valid_from or start, target)
    last = min(end, valid_until) if valid_until else end

    dates: List[date] = []
    for occurrence in _iter_from(anchor, recurrence, target, start):
        if occurrence > last:
            break
        if occurrence >= start and (not dates or occurrence > dates[-1]):
            dates.append(occurrence)
    return dates


def rule_occurrences(rule, start: DateLike, end: DateLike) -> List[date]:
    """Occurrences of a ``RecurringTraining`` in the window; none when inactive."""
    start = to_calendar_date(start)
    end = to_calendar_date(end)
    if end < start:
        raise InvalidArgument(
            "invalid_window", f"Window end {end} is before start {start}"
        )
    if not rule.is_active:
        return []
    return calculate_occurrences(
        rule.day_of_week,
        rule.recurrence,
        start,
        end,
        valid_from=rule.valid_from,
        valid_until=rule.valid_until,
    )


def is_occurrence(rule, day: DateLike) -> bool:
    """Whether the rule actually occurs on ``day``."""
    day = to_calendar_date(day)
    return day in rule_occurrences(rule, day, day)
