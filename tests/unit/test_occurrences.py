"""Unit tests for the occurrence calculator.

Pure date arithmetic, no database involved.
"""

import os
import time as time_module
from datetime import date, datetime, timezone

import pytest
from libs.common.errors import InvalidArgument
from services.training_service.models import DayOfWeek, RecurrenceInterval
from services.training_service.services.occurrences import (
    calculate_occurrences,
    is_occurrence,
    next_weekday,
    rule_occurrences,
)
from tests.factories import RecurringTrainingFactory


@pytest.fixture
def process_timezone():
    """Switch the process timezone; restored afterwards."""
    if not hasattr(time_module, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    original = os.environ.get("TZ")

    def _switch(name):
        os.environ["TZ"] = name
        time_module.tzset()

    yield _switch

    if original is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = original
    time_module.tzset()


# ---------------------------------------------------------------------------
# next_weekday
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_next_weekday_same_day():
    assert next_weekday(date(2025, 3, 4), DayOfWeek.TUESDAY) == date(2025, 3, 4)


@pytest.mark.unit
def test_next_weekday_wraps_into_next_week():
    assert next_weekday(date(2025, 3, 5), DayOfWeek.TUESDAY) == date(2025, 3, 11)


# ---------------------------------------------------------------------------
# WEEKLY / BIWEEKLY / ONCE
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_weekly_tuesdays_in_march():
    dates = calculate_occurrences(
        DayOfWeek.TUESDAY,
        RecurrenceInterval.WEEKLY,
        date(2025, 3, 1),
        date(2025, 3, 31),
    )

    assert dates == [
        date(2025, 3, 4),
        date(2025, 3, 11),
        date(2025, 3, 18),
        date(2025, 3, 25),
    ]


@pytest.mark.unit
def test_weekly_respects_validity_window():
    dates = calculate_occurrences(
        DayOfWeek.TUESDAY,
        RecurrenceInterval.WEEKLY,
        date(2025, 3, 1),
        date(2025, 3, 31),
        valid_from=date(2025, 3, 10),
        valid_until=date(2025, 3, 18),
    )

    assert dates == [date(2025, 3, 11), date(2025, 3, 18)]


@pytest.mark.unit
def test_biweekly_keeps_cadence_across_windows():
    """Every window overlapping the rule sees the same fortnightly dates."""
    kwargs = dict(valid_from=date(2025, 3, 4))

    full = calculate_occurrences(
        DayOfWeek.TUESDAY,
        RecurrenceInterval.BIWEEKLY,
        date(2025, 3, 1),
        date(2025, 4, 10),
        **kwargs,
    )
    later = calculate_occurrences(
        DayOfWeek.TUESDAY,
        RecurrenceInterval.BIWEEKLY,
        date(2025, 3, 10),
        date(2025, 4, 10),
        **kwargs,
    )

    assert full == [date(2025, 3, 4), date(2025, 3, 18), date(2025, 4, 1)]
    assert later == [date(2025, 3, 18), date(2025, 4, 1)]


@pytest.mark.unit
def test_once_yields_single_date():
    dates = calculate_occurrences(
        DayOfWeek.TUESDAY,
        RecurrenceInterval.ONCE,
        date(2025, 3, 1),
        date(2025, 4, 30),
        valid_from=date(2025, 3, 5),
    )

    assert dates == [date(2025, 3, 11)]


@pytest.mark.unit
def test_every_result_falls_on_rule_weekday():
    for target in DayOfWeek:
        dates = calculate_occurrences(
            target, RecurrenceInterval.WEEKLY, date(2024, 12, 1), date(2025, 2, 28)
        )
        assert dates
        assert all(d.weekday() == int(target) for d in dates)
        assert dates == sorted(set(dates))


# ---------------------------------------------------------------------------
# MONTHLY
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_monthly_realigns_to_one_friday_per_month():
    dates = calculate_occurrences(
        DayOfWeek.FRIDAY,
        RecurrenceInterval.MONTHLY,
        date(2025, 1, 1),
        date(2025, 12, 31),
        valid_from=date(2025, 1, 31),
    )

    assert len(dates) == 12
    assert [d.month for d in dates] == list(range(1, 13))
    assert all(d.weekday() == DayOfWeek.FRIDAY for d in dates)
    # Jan 31 falls on a Friday; March 31 does not, so March uses the 28th
    assert dates[0] == date(2025, 1, 31)
    assert dates[1] == date(2025, 2, 28)
    assert dates[2] == date(2025, 3, 28)


@pytest.mark.unit
def test_monthly_window_inside_a_later_month():
    dates = calculate_occurrences(
        DayOfWeek.FRIDAY,
        RecurrenceInterval.MONTHLY,
        date(2025, 6, 1),
        date(2025, 6, 30),
        valid_from=date(2025, 1, 31),
    )

    assert len(dates) == 1
    assert dates[0].month == 6
    assert dates[0].weekday() == DayOfWeek.FRIDAY


# ---------------------------------------------------------------------------
# Edge cases
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_inverted_validity_yields_nothing():
    dates = calculate_occurrences(
        DayOfWeek.TUESDAY,
        RecurrenceInterval.WEEKLY,
        date(2025, 3, 1),
        date(2025, 3, 31),
        valid_from=date(2025, 3, 20),
        valid_until=date(2025, 3, 10),
    )

    assert dates == []


@pytest.mark.unit
def test_inverted_window_is_rejected():
    with pytest.raises(InvalidArgument) as exc_info:
        calculate_occurrences(
            DayOfWeek.TUESDAY,
            RecurrenceInterval.WEEKLY,
            date(2025, 3, 31),
            date(2025, 3, 1),
        )

    assert exc_info.value.reason == "invalid_window"
    assert exc_info.value.status_code == 400


@pytest.mark.unit
def test_datetime_bounds_use_their_calendar_date():
    dates = calculate_occurrences(
        DayOfWeek.TUESDAY,
        RecurrenceInterval.WEEKLY,
        datetime(2025, 3, 4, 23, 30, tzinfo=timezone.utc),
        datetime(2025, 3, 11, 0, 15, tzinfo=timezone.utc),
    )

    assert dates == [date(2025, 3, 4), date(2025, 3, 11)]


@pytest.mark.unit
def test_results_do_not_depend_on_process_timezone(process_timezone):
    def compute():
        return calculate_occurrences(
            DayOfWeek.SUNDAY,
            RecurrenceInterval.WEEKLY,
            date(2025, 3, 1),
            date(2025, 4, 30),
        )

    process_timezone("Pacific/Kiritimati")
    east = compute()
    process_timezone("America/Adak")
    west = compute()

    assert east == west
    assert all(d.weekday() == DayOfWeek.SUNDAY for d in east)


# ---------------------------------------------------------------------------
# Rule helpers
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_inactive_rule_has_no_occurrences():
    rule = RecurringTrainingFactory.create(is_active=False)

    assert rule_occurrences(rule, date(2025, 3, 1), date(2025, 3, 31)) == []


@pytest.mark.unit
def test_is_occurrence():
    rule = RecurringTrainingFactory.create(
        recurrence=RecurrenceInterval.BIWEEKLY, valid_from=date(2025, 3, 4)
    )

    assert is_occurrence(rule, date(2025, 3, 18))
    assert not is_occurrence(rule, date(2025, 3, 11))
    assert not is_occurrence(rule, date(2025, 3, 19))


@pytest.mark.unit
@pytest.mark.parametrize(
    "day_of_week, recurrence, start, end, valid_from, expected",
    [
        (
            DayOfWeek.MONDAY,
            RecurrenceInterval.WEEKLY,
            date(2024, 1, 1),
            date(2024, 1, 31),
            date(2024, 1, 1),
            [
                date(2024, 1, 1),
                date(2024, 1, 8),
                date(2024, 1, 15),
                date(2024, 1, 22),
                date(2024, 1, 29),
            ],
        ),
        (
            DayOfWeek.FRIDAY,
            RecurrenceInterval.MONTHLY,
            date(2024, 1, 1),
            date(2024, 6, 30),
            date(2024, 1, 5),
            [
                date(2024, 1, 5),
                date(2024, 2, 9),
                date(2024, 3, 8),
                date(2024, 4, 5),
                date(2024, 5, 10),
                date(2024, 6, 7),
            ],
        ),
        # Cadence stays on the valid_from anchor, not on the window start
        (
            DayOfWeek.MONDAY,
            RecurrenceInterval.BIWEEKLY,
            date(2024, 1, 8),
            date(2024, 1, 31),
            date(2024, 1, 1),
            [date(2024, 1, 15), date(2024, 1, 29)],
        ),
    ],
    ids=["weekly-mondays-january", "monthly-fridays-half-year", "biweekly-anchor"],
)
def test_reference_schedules(day_of_week, recurrence, start, end, valid_from, expected):
    assert (
        calculate_occurrences(
            day_of_week, recurrence, start, end, valid_from=valid_from
        )
        == expected
    )
