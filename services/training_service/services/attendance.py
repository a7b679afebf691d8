"""Attendance marking, with absence classification and alert evaluation."""

import uuid
from datetime import datetime
from typing import List, Optional

from libs.common.datetime_utils import as_utc
from libs.common.errors import Conflict, NotFound
from libs.common.logging import get_logger
from services.training_service.models import (
    Athlete,
    AttendanceRecord,
    AttendanceStatus,
    Cancellation,
    CancellationActor,
)
from services.training_service.notifications import Notifier
from services.training_service.policy_config import PolicyConfig
from services.training_service.schemas import AttendanceResult
from services.training_service.services.absence_alerts import check_absence_alert
from services.training_service.services.cancellations import classify_absence
from services.training_service.services.materializer import (
    find_session,
    get_session,
    resolve_session,
)
from services.training_service.services.virtual_sessions import (
    VirtualSessionRef,
    parse_session_ref,
)
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

UPSERT_ATTEMPTS = 2


async def _ensure_athlete(db: AsyncSession, athlete_id: uuid.UUID) -> None:
    result = await db.execute(select(Athlete.id).where(Athlete.id == athlete_id))
    if result.scalar_one_or_none() is None:
        raise NotFound("athlete_not_found", f"Athlete {athlete_id} not found")


async def find_active_cancellation(
    db: AsyncSession, athlete_id: uuid.UUID, training_session_id: uuid.UUID
) -> Optional[Cancellation]:
    result = await db.execute(
        select(Cancellation).where(
            Cancellation.actor_type == CancellationActor.ATHLETE,
            Cancellation.actor_id == athlete_id,
            Cancellation.training_session_id == training_session_id,
            Cancellation.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def _upsert_attendance(
    db: AsyncSession,
    training_session_id: uuid.UUID,
    athlete_id: uuid.UUID,
    status: AttendanceStatus,
    marked_by: Optional[uuid.UUID],
    notes: Optional[str],
    now: datetime,
) -> AttendanceRecord:
    # One record per athlete and session; a concurrent insert turns into an update
    for _ in range(UPSERT_ATTEMPTS):
        result = await db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.training_session_id == training_session_id,
                AttendanceRecord.athlete_id == athlete_id,
            )
        )
        record = result.scalar_one_or_none()
        if record:
            record.status = status
            record.marked_at = now
            record.marked_by = marked_by
            record.notes = notes
        else:
            record = AttendanceRecord(
                training_session_id=training_session_id,
                athlete_id=athlete_id,
                status=status,
                marked_at=now,
                marked_by=marked_by,
                notes=notes,
            )
            db.add(record)
        try:
            await db.commit()
            return record
        except IntegrityError:
            await db.rollback()
    raise Conflict("attendance_conflict", "Attendance was modified concurrently")


async def record_absence(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    ref,
    *,
    config: PolicyConfig,
    notifier: Notifier,
    status: Optional[AttendanceStatus] = None,
    marked_by: Optional[uuid.UUID] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AttendanceResult:
    """Mark an athlete's attendance for a session.

    Without an explicit ``status`` the athlete is recorded as absent, excused
    or not depending on their cancellation. Recording an unexcused absence
    runs the absence alert check; a failing notification does not affect the
    stored record.
    """
    now = as_utc(now)
    await _ensure_athlete(db, athlete_id)
    session = await resolve_session(db, ref)
    session_id = session.id

    if status is None:
        cancellation = await find_active_cancellation(db, athlete_id, session_id)
        status = classify_absence(cancellation)

    record = await _upsert_attendance(
        db, session_id, athlete_id, status, marked_by, notes, now
    )
    logger.info(
        "Marked athlete %s as %s for session %s", athlete_id, status.value, session_id
    )

    triggered = False
    if status == AttendanceStatus.ABSENT_UNEXCUSED:
        check = await check_absence_alert(
            db, athlete_id, config=config, notifier=notifier, now=now
        )
        triggered = check.triggered

    return AttendanceResult(
        attendance_id=record.id, status=status, absence_alert_triggered=triggered
    )


async def list_session_attendance(db: AsyncSession, ref) -> List[AttendanceRecord]:
    """Attendance of one session; an unstored occurrence has none."""
    parsed = parse_session_ref(ref)
    if isinstance(parsed, VirtualSessionRef):
        session = await find_session(db, parsed.recurring_training_id, parsed.date)
        if session is None:
            return []
        session_id = session.id
    else:
        session_id = (await get_session(db, parsed)).id
    result = await db.execute(
        select(AttendanceRecord)
        .where(AttendanceRecord.training_session_id == session_id)
        .order_by(AttendanceRecord.marked_at.asc())
    )
    return list(result.scalars().all())
