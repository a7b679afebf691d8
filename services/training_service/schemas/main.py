import datetime as dt
import uuid
from datetime import datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from services.training_service.models import (
    AttendanceStatus,
    CancellationActor,
    DayOfWeek,
    SessionState,
)

# Minimum reason length the club asks athletes for
MIN_REASON_LENGTH = 10


# ============================================================================
# SESSION VIEWS
# ============================================================================


class SessionGroupView(BaseModel):
    id: Optional[uuid.UUID] = None  # SessionGroup id once materialized
    training_group_id: Optional[uuid.UUID] = None
    name: str

    model_config = ConfigDict(frozen=True)


class SessionView(BaseModel):
    """One occurrence of a training, stored or computed."""

    ref: str  # Session UUID, or a virtual reference for unstored occurrences
    id: Optional[uuid.UUID] = None
    recurring_training_id: Optional[uuid.UUID] = None
    training_name: Optional[str] = None
    date: dt.date
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    state: SessionState

    is_cancelled: bool = False
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None

    attendance_count: int = 0
    has_attendance: bool = False

    groups: List[SessionGroupView] = []

    model_config = ConfigDict(frozen=True)

    @property
    def is_virtual(self) -> bool:
        return self.state == SessionState.VIRTUAL


class MaterializeResponse(BaseModel):
    session_id: uuid.UUID
    ref: str


class SessionCancel(BaseModel):
    cancelled_by: uuid.UUID
    reason: Optional[str] = None


class SessionNotesUpdate(BaseModel):
    notes: Optional[str] = None


# ============================================================================
# CANCELLATIONS
# ============================================================================


class CancellationCreate(BaseModel):
    actor_type: CancellationActor = CancellationActor.ATHLETE
    actor_id: uuid.UUID
    reason: str = Field(min_length=MIN_REASON_LENGTH)


class CancellationReasonUpdate(BaseModel):
    reason: str = Field(min_length=MIN_REASON_LENGTH)


class CancellationResult(BaseModel):
    cancellation_id: uuid.UUID
    is_late: bool


class CancellationResponse(BaseModel):
    id: uuid.UUID
    training_session_id: uuid.UUID
    actor_type: CancellationActor
    actor_id: uuid.UUID
    reason: str
    is_late: bool
    is_active: bool
    cancelled_at: datetime
    undone_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# ATTENDANCE & ALERTS
# ============================================================================


class AttendanceCreate(BaseModel):
    athlete_id: uuid.UUID
    # None lets the service classify the absence from the athlete's cancellation
    status: Optional[AttendanceStatus] = None
    marked_by: Optional[uuid.UUID] = None
    notes: Optional[str] = None


class AttendanceResult(BaseModel):
    attendance_id: uuid.UUID
    status: AttendanceStatus
    absence_alert_triggered: bool = False


class AbsenceAlertResponse(BaseModel):
    id: uuid.UUID
    athlete_id: uuid.UUID
    absence_count: int
    window_days: int
    notification_sent: bool
    is_acknowledged: bool
    acknowledged_by: Optional[uuid.UUID] = None
    acknowledged_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AlertAcknowledge(BaseModel):
    acknowledged_by: uuid.UUID


class AttendanceResponse(BaseModel):
    id: uuid.UUID
    training_session_id: uuid.UUID
    athlete_id: uuid.UUID
    status: AttendanceStatus
    marked_at: datetime
    marked_by: Optional[uuid.UUID] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
