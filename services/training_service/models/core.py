import datetime as dt
import uuid
from datetime import date, datetime, time
from typing import List, Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.training_service.models.enums import (
    AttendanceStatus,
    CancellationActor,
    DayOfWeek,
    RecurrenceInterval,
    enum_values,
)
from sqlalchemy import Boolean, Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text, Time, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# EXTERNAL REFERENCES
# ============================================================================


class Athlete(Base):
    """Reference to the shared athletes table (owned by the members service)."""

    __tablename__ = "athletes"
    __table_args__ = {"extend_existing": True, "info": {"skip_autogenerate": True}}

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Athlete {self.full_name}>"


# ============================================================================
# RECURRING TRAINING (TEMPLATE)
# ============================================================================


class RecurringTraining(Base):
    """Weekly-pattern template that sessions are projected from."""

    __tablename__ = "recurring_trainings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)

    # Recurrence pattern
    day_of_week: Mapped[DayOfWeek] = mapped_column(
        SAEnum(DayOfWeek, name="day_of_week_enum"), nullable=False
    )
    start_time: Mapped[time] = mapped_column(Time, nullable=False)  # Club-local
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    recurrence: Mapped[RecurrenceInterval] = mapped_column(
        SAEnum(
            RecurrenceInterval,
            name="recurrence_interval_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=RecurrenceInterval.WEEKLY,
        server_default="weekly",
    )

    # Validity window, either bound optional
    valid_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    valid_until: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    groups: Mapped[List["TrainingGroup"]] = relationship(
        back_populates="recurring_training",
        order_by="TrainingGroup.sort_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<RecurringTraining {self.name} - {self.day_of_week.name}s>"


class TrainingGroup(Base):
    """Sub-group of a recurring training (roster lives with the members service)."""

    __tablename__ = "training_groups"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recurring_training_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("recurring_trainings.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    recurring_training: Mapped[RecurringTraining] = relationship(
        back_populates="groups"
    )
    trainers: Mapped[List["TrainingGroupTrainer"]] = relationship(
        back_populates="group", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<TrainingGroup {self.name}>"


class TrainingGroupTrainer(Base):
    """Junction table: trainers assigned to a training group."""

    __tablename__ = "training_group_trainers"
    __table_args__ = (
        UniqueConstraint("group_id", "trainer_id", name="uq_training_group_trainer"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("training_groups.id"), nullable=False, index=True
    )
    trainer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    group: Mapped[TrainingGroup] = relationship(back_populates="trainers")


# ============================================================================
# MATERIALIZED SESSIONS
# ============================================================================


class TrainingSession(Base):
    """Persisted occurrence of a recurring training.

    Day and times are frozen at materialization; later template edits only
    change virtual projections.
    """

    __tablename__ = "training_sessions"
    __table_args__ = (
        UniqueConstraint(
            "recurring_training_id", "date", name="uq_training_session_rule_date"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recurring_training_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("recurring_trainings.id"), nullable=True, index=True
    )

    # === Timing ===
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    day_of_week: Mapped[DayOfWeek] = mapped_column(
        SAEnum(DayOfWeek, name="day_of_week_enum"), nullable=False
    )
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    # === Whole-session cancellation ===
    is_cancelled: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    recurring_training: Mapped[Optional[RecurringTraining]] = relationship()
    groups: Mapped[List["SessionGroup"]] = relationship(
        back_populates="session",
        order_by="SessionGroup.sort_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<TrainingSession {self.recurring_training_id} on {self.date}>"


class SessionGroup(Base):
    """Snapshot of a training group taken when the session was materialized."""

    __tablename__ = "session_groups"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    training_session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("training_sessions.id"), nullable=False, index=True
    )
    training_group_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("training_groups.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    session: Mapped[TrainingSession] = relationship(back_populates="groups")
    trainers: Mapped[List["SessionGroupTrainer"]] = relationship(
        back_populates="session_group", cascade="all, delete-orphan"
    )


class SessionGroupTrainer(Base):
    """Trainer linkage copied from the training group at materialization."""

    __tablename__ = "session_group_trainers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("session_groups.id"), nullable=False, index=True
    )
    trainer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    session_group: Mapped[SessionGroup] = relationship(back_populates="trainers")


# ============================================================================
# EXCEPTIONS ATTACHED TO SESSIONS
# ============================================================================


class Cancellation(Base):
    """An athlete or trainer signing off from one session. Never deleted."""

    __tablename__ = "cancellations"
    __table_args__ = (
        UniqueConstraint(
            "actor_type",
            "actor_id",
            "training_session_id",
            name="uq_cancellation_actor_session",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    training_session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("training_sessions.id"), nullable=False, index=True
    )
    actor_type: Mapped[CancellationActor] = mapped_column(
        SAEnum(
            CancellationActor,
            name="cancellation_actor_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    actor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    # Set when the cancellation is created or re-activated
    is_late: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true"
    )
    cancelled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    undone_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    session: Mapped[TrainingSession] = relationship()

    def __repr__(self):
        return (
            f"<Cancellation {self.actor_type.value}={self.actor_id} "
            f"session={self.training_session_id} active={self.is_active}>"
        )


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint(
            "training_session_id", "athlete_id", name="uq_attendance_session_athlete"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    training_session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("training_sessions.id"), nullable=False, index=True
    )
    athlete_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    status: Mapped[AttendanceStatus] = mapped_column(
        SAEnum(
            AttendanceStatus,
            name="attendance_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=AttendanceStatus.PRESENT,
    )
    marked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )
    marked_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return (
            f"<AttendanceRecord Session={self.training_session_id} "
            f"Athlete={self.athlete_id} {self.status.value}>"
        )


class AbsenceAlert(Base):
    """Raised when an athlete piles up unexcused absences.

    Alerts of one athlete form a chain: each names its predecessor, and no
    alert can have two successors.
    """

    __tablename__ = "absence_alerts"
    __table_args__ = (
        UniqueConstraint(
            "athlete_id", "chain_key", name="uq_absence_alert_athlete_chain"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    athlete_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    absence_count: Mapped[int] = mapped_column(Integer, nullable=False)
    window_days: Mapped[int] = mapped_column(Integer, nullable=False)
    # Id of the alert this one follows, or "first"; see absence_alerts.alert_chain_key
    chain_key: Mapped[str] = mapped_column(String, nullable=False)

    notification_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )

    is_acknowledged: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    acknowledged_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )

    def __repr__(self):
        return f"<AbsenceAlert Athlete={self.athlete_id} count={self.absence_count}>"
