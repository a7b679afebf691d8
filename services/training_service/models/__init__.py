"""Training Service models package."""

from services.training_service.models.core import (
    AbsenceAlert,
    Athlete,
    AttendanceRecord,
    Cancellation,
    RecurringTraining,
    SessionGroup,
    SessionGroupTrainer,
    TrainingGroup,
    TrainingGroupTrainer,
    TrainingSession,
)
from services.training_service.models.enums import (
    AttendanceStatus,
    CancellationActor,
    DayOfWeek,
    RecurrenceInterval,
    SessionState,
)

__all__ = [
    "AbsenceAlert",
    "Athlete",
    "AttendanceRecord",
    "AttendanceStatus",
    "Cancellation",
    "CancellationActor",
    "DayOfWeek",
    "RecurrenceInterval",
    "RecurringTraining",
    "SessionGroup",
    "SessionGroupTrainer",
    "SessionState",
    "TrainingGroup",
    "TrainingGroupTrainer",
    "TrainingSession",
]
