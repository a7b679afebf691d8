"""Enum definitions for training service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class DayOfWeek(enum.IntEnum):
    """Day of week, numbered like ``date.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class RecurrenceInterval(str, enum.Enum):
    ONCE = "once"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class SessionState(str, enum.Enum):
    VIRTUAL = "virtual"  # Computed from the recurring training, nothing stored
    MATERIALIZED = "materialized"


class CancellationActor(str, enum.Enum):
    ATHLETE = "athlete"
    TRAINER = "trainer"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT_EXCUSED = "absent_excused"
    ABSENT_UNEXCUSED = "absent_unexcused"
