"""Absence alerts for athletes who keep missing training without notice.

An alert is raised when an athlete has at least ``threshold`` unexcused
absences within the rolling window and no alert was raised for them during
the cooldown. Admin notification happens after the alert is stored and never
undoes it.
"""

import enum
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from libs.common.datetime_utils import as_utc
from libs.common.errors import Conflict, NotFound
from libs.common.logging import get_logger
from pydantic import BaseModel, ConfigDict
from services.training_service.models import (
    AbsenceAlert,
    Athlete,
    AttendanceRecord,
    AttendanceStatus,
    RecurringTraining,
    TrainingSession,
)
from services.training_service.notifications import Notifier
from services.training_service.policy_config import PolicyConfig
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ALERT_TEMPLATE = "absence_alert"
FIRST_ALERT_KEY = "first"


class AlertOutcome(str, enum.Enum):
    TRIGGERED = "triggered"
    DISABLED = "disabled"
    BELOW_THRESHOLD = "below_threshold"
    COOLDOWN = "cooldown"


class AlertDecision(BaseModel):
    """Outcome of one alert evaluation. Anything but TRIGGERED is a suppression."""

    outcome: AlertOutcome
    absence_count: int
    window_days: int
    last_alert_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @property
    def triggered(self) -> bool:
        return self.outcome == AlertOutcome.TRIGGERED


class AlertCheckResult(BaseModel):
    decision: AlertDecision
    alert_id: Optional[uuid.UUID] = None
    notification_sent: bool = False

    @property
    def triggered(self) -> bool:
        return self.alert_id is not None


def evaluate_absence_alert(
    absence_count: int,
    last_alert_at: Optional[datetime],
    config: PolicyConfig,
    now: datetime,
) -> AlertDecision:
    """Decide whether a new alert is due. Pure; no I/O."""
    now = as_utc(now)

    def decide(outcome: AlertOutcome) -> AlertDecision:
        return AlertDecision(
            outcome=outcome,
            absence_count=absence_count,
            window_days=config.absence_alert_window_days,
            last_alert_at=last_alert_at,
        )

    if not config.absence_alert_enabled:
        return decide(AlertOutcome.DISABLED)
    if absence_count < config.absence_alert_threshold:
        return decide(AlertOutcome.BELOW_THRESHOLD)
    cooldown = timedelta(days=config.absence_alert_cooldown_days)
    if last_alert_at is not None and as_utc(last_alert_at) >= now - cooldown:
        return decide(AlertOutcome.COOLDOWN)
    return decide(AlertOutcome.TRIGGERED)


def alert_chain_key(previous_alert_id: Optional[uuid.UUID]) -> str:
    """Key naming the alert a new one was decided against.

    Unique per athlete, so two checks that saw the same latest alert (or
    none) cannot both insert, however far apart their clocks are.
    """
    if previous_alert_id is None:
        return FIRST_ALERT_KEY
    return str(previous_alert_id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def count_unexcused_absences(
    db: AsyncSession, athlete_id: uuid.UUID, since: datetime, until: datetime
) -> int:
    result = await db.execute(
        select(func.count(AttendanceRecord.id)).where(
            AttendanceRecord.athlete_id == athlete_id,
            AttendanceRecord.status == AttendanceStatus.ABSENT_UNEXCUSED,
            AttendanceRecord.marked_at >= as_utc(since),
            AttendanceRecord.marked_at <= as_utc(until),
        )
    )
    return result.scalar_one()


async def list_unexcused_absences(
    db: AsyncSession, athlete_id: uuid.UUID, since: datetime, until: datetime
) -> List[dict]:
    """Sessions behind the counted absences, oldest first, for the alert email."""
    result = await db.execute(
        select(
            TrainingSession.date,
            TrainingSession.start_time,
            RecurringTraining.name,
        )
        .join(
            AttendanceRecord,
            AttendanceRecord.training_session_id == TrainingSession.id,
        )
        .outerjoin(
            RecurringTraining,
            TrainingSession.recurring_training_id == RecurringTraining.id,
        )
        .where(
            AttendanceRecord.athlete_id == athlete_id,
            AttendanceRecord.status == AttendanceStatus.ABSENT_UNEXCUSED,
            AttendanceRecord.marked_at >= as_utc(since),
            AttendanceRecord.marked_at <= as_utc(until),
        )
        .order_by(TrainingSession.date.asc(), TrainingSession.start_time.asc())
    )
    return [
        {
            "date": day.isoformat(),
            "start_time": start_time.strftime("%H:%M"),
            "training_name": name,
        }
        for day, start_time, name in result.all()
    ]


async def latest_alert(
    db: AsyncSession, athlete_id: uuid.UUID
) -> Optional[AbsenceAlert]:
    result = await db.execute(
        select(AbsenceAlert)
        .where(AbsenceAlert.athlete_id == athlete_id)
        .order_by(AbsenceAlert.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _get_athlete(db: AsyncSession, athlete_id: uuid.UUID) -> Athlete:
    result = await db.execute(select(Athlete).where(Athlete.id == athlete_id))
    athlete = result.scalar_one_or_none()
    if not athlete:
        raise NotFound("athlete_not_found", f"Athlete {athlete_id} not found")
    return athlete


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def _notify_admins(
    notifier: Notifier,
    athlete: Athlete,
    alert: AbsenceAlert,
    absences: List[dict],
    config: PolicyConfig,
) -> bool:
    recipients = list(config.admin_recipients)
    if not recipients:
        logger.warning("No admin recipients configured for absence alert %s", alert.id)
        return False
    try:
        sent = await notifier.notify(
            recipients,
            {"template": ALERT_TEMPLATE, "athlete_name": athlete.full_name},
            {
                "athlete_name": athlete.full_name,
                "athlete_email": athlete.email,
                "absence_count": alert.absence_count,
                "window_days": alert.window_days,
                "alert_id": str(alert.id),
                "raised_at": alert.created_at.isoformat(),
                "sessions": absences,
            },
        )
    except Exception:
        logger.exception("Absence alert notification failed for alert %s", alert.id)
        return False
    if not sent:
        logger.error("Absence alert notification not delivered for alert %s", alert.id)
    return bool(sent)


async def check_absence_alert(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    *,
    config: PolicyConfig,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> AlertCheckResult:
    """Evaluate and, when due, raise an absence alert for one athlete.

    The alert row is committed before admins are notified; a failed
    notification leaves it in place with ``notification_sent`` false.
    """
    now = as_utc(now)
    athlete = await _get_athlete(db, athlete_id)

    window_start = now - timedelta(days=config.absence_alert_window_days)
    absence_count = await count_unexcused_absences(db, athlete_id, window_start, now)
    last = await latest_alert(db, athlete_id)
    decision = evaluate_absence_alert(
        absence_count, last.created_at if last else None, config, now
    )
    if not decision.triggered:
        logger.debug(
            "No absence alert for athlete %s: %s (%d absences)",
            athlete_id,
            decision.outcome.value,
            absence_count,
        )
        return AlertCheckResult(decision=decision)

    athlete_name = athlete.full_name
    alert = AbsenceAlert(
        athlete_id=athlete_id,
        absence_count=absence_count,
        window_days=config.absence_alert_window_days,
        chain_key=alert_chain_key(last.id if last else None),
        created_at=now,
    )
    db.add(alert)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info(
            "Absence alert for athlete %s already raised concurrently", athlete_id
        )
        return AlertCheckResult(
            decision=decision.model_copy(update={"outcome": AlertOutcome.COOLDOWN})
        )

    logger.info(
        "Raised absence alert %s for %s (%d unexcused in %d days)",
        alert.id,
        athlete_name,
        absence_count,
        config.absence_alert_window_days,
    )

    absences = await list_unexcused_absences(db, athlete_id, window_start, now)
    sent = await _notify_admins(notifier, athlete, alert, absences, config)
    if sent:
        alert.notification_sent = True
        await db.commit()
    return AlertCheckResult(
        decision=decision, alert_id=alert.id, notification_sent=sent
    )


async def list_alerts(
    db: AsyncSession,
    athlete_id: Optional[uuid.UUID] = None,
    days: int = 30,
    limit: int = 50,
    unacknowledged_only: bool = False,
    now: Optional[datetime] = None,
) -> List[AbsenceAlert]:
    """Alerts raised in the last ``days`` days, newest first."""
    since = as_utc(now) - timedelta(days=days)
    query = (
        select(AbsenceAlert)
        .where(AbsenceAlert.created_at >= since)
        .order_by(AbsenceAlert.created_at.desc())
        .limit(limit)
    )
    if athlete_id:
        query = query.where(AbsenceAlert.athlete_id == athlete_id)
    if unacknowledged_only:
        query = query.where(AbsenceAlert.is_acknowledged.is_(False))
    result = await db.execute(query)
    return list(result.scalars().all())


async def acknowledge_alert(
    db: AsyncSession,
    alert_id: uuid.UUID,
    acknowledged_by: uuid.UUID,
    now: Optional[datetime] = None,
) -> AbsenceAlert:
    result = await db.execute(select(AbsenceAlert).where(AbsenceAlert.id == alert_id))
    alert = result.scalar_one_or_none()
    if not alert:
        raise NotFound("alert_not_found", f"Absence alert {alert_id} not found")
    if alert.is_acknowledged:
        raise Conflict("already_acknowledged", "Absence alert already acknowledged")

    alert.is_acknowledged = True
    alert.acknowledged_by = acknowledged_by
    alert.acknowledged_at = as_utc(now)
    await db.commit()
    logger.info("Absence alert %s acknowledged by %s", alert.id, acknowledged_by)
    return alert
