"""Athlete and trainer cancellations with the club's deadline policy.

A cancellation after the deadline is still accepted; it is only flagged
``is_late``, and a late cancellation counts as an unexcused absence. Sessions
that have already started cannot be cancelled at all.
"""

import uuid
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from libs.common.datetime_utils import as_utc, local_datetime
from libs.common.errors import Conflict, InvalidArgument, NotFound
from libs.common.logging import get_logger
from services.training_service.models import (
    AttendanceStatus,
    Cancellation,
    CancellationActor,
    TrainingSession,
)
from services.training_service.policy_config import PolicyConfig
from services.training_service.schemas import CancellationResult
from services.training_service.services.materializer import (
    find_session,
    load_occurrence_training,
    resolve_session,
)
from services.training_service.services.virtual_sessions import (
    VirtualSessionRef,
    parse_session_ref,
)
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Deadline policy
# ---------------------------------------------------------------------------


def session_start_at(session_date: date, start_time: time, tz_name: str) -> datetime:
    """Instant a session starts, from its club-local date and wall-clock time."""
    return local_datetime(session_date, start_time, tz_name)


def cancellation_deadline(session_start: datetime, deadline_hours: int) -> datetime:
    return session_start - timedelta(hours=deadline_hours)


def is_late_cancellation(
    session_start: datetime, deadline_hours: int, now: datetime
) -> bool:
    """True when ``now`` is past the deadline before ``session_start``."""
    return now > cancellation_deadline(session_start, deadline_hours)


def has_started(session_start: datetime, now: datetime) -> bool:
    return now >= session_start


def classify_absence(cancellation: Optional[Cancellation]) -> AttendanceStatus:
    """Absence status implied by an athlete's cancellation for the session."""
    if cancellation is not None and cancellation.is_active and not cancellation.is_late:
        return AttendanceStatus.ABSENT_EXCUSED
    return AttendanceStatus.ABSENT_UNEXCUSED


def _session_start(session: TrainingSession, config: PolicyConfig) -> datetime:
    return session_start_at(session.date, session.start_time, config.timezone)


async def _reject_started_occurrence(
    db: AsyncSession, ref: VirtualSessionRef, config: PolicyConfig, now: datetime
) -> None:
    """Refuse a started occurrence before anything is stored for it."""
    if await find_session(db, ref.recurring_training_id, ref.date):
        return
    training = await load_occurrence_training(db, ref)
    start = session_start_at(ref.date, training.start_time, config.timezone)
    if has_started(start, now):
        raise Conflict("session_started", f"Session {ref.encode()} has already started")


def _clean_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise InvalidArgument("reason_required", "A cancellation reason is required")
    return reason


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def find_cancellation(
    db: AsyncSession,
    actor_type: CancellationActor,
    actor_id: uuid.UUID,
    training_session_id: uuid.UUID,
) -> Optional[Cancellation]:
    result = await db.execute(
        select(Cancellation).where(
            Cancellation.actor_type == actor_type,
            Cancellation.actor_id == actor_id,
            Cancellation.training_session_id == training_session_id,
        )
    )
    return result.scalar_one_or_none()


async def get_cancellation(
    db: AsyncSession, cancellation_id: uuid.UUID
) -> Cancellation:
    result = await db.execute(
        select(Cancellation)
        .options(selectinload(Cancellation.session))
        .where(Cancellation.id == cancellation_id)
    )
    cancellation = result.scalar_one_or_none()
    if not cancellation:
        raise NotFound(
            "cancellation_not_found", f"Cancellation {cancellation_id} not found"
        )
    return cancellation


async def list_active_cancellations(
    db: AsyncSession,
    actor_type: CancellationActor,
    actor_id: uuid.UUID,
    from_date: Optional[date] = None,
) -> List[Cancellation]:
    """Active cancellations of one actor, soonest session first."""
    query = (
        select(Cancellation)
        .join(TrainingSession, Cancellation.training_session_id == TrainingSession.id)
        .where(
            Cancellation.actor_type == actor_type,
            Cancellation.actor_id == actor_id,
            Cancellation.is_active.is_(True),
        )
        .order_by(TrainingSession.date.asc(), TrainingSession.start_time.asc())
    )
    if from_date:
        query = query.where(TrainingSession.date >= from_date)
    result = await db.execute(query)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def cancel(
    db: AsyncSession,
    ref,
    *,
    actor_type: CancellationActor,
    actor_id: uuid.UUID,
    reason: str,
    config: PolicyConfig,
    now: Optional[datetime] = None,
) -> CancellationResult:
    """Sign an athlete or trainer off from a session.

    Virtual sessions are materialized first. A previously undone cancellation
    is re-activated and its lateness re-evaluated against ``now``.

    Raises:
        Conflict: session started, session cancelled as a whole, or the actor
            already holds an active cancellation
    """
    reason = _clean_reason(reason)
    actor_type = CancellationActor(actor_type)
    now = as_utc(now)

    ref = parse_session_ref(ref)
    if isinstance(ref, VirtualSessionRef):
        await _reject_started_occurrence(db, ref, config, now)

    session = await resolve_session(db, ref)
    start = _session_start(session, config)
    if has_started(start, now):
        raise Conflict("session_started", f"Session {session.id} has already started")
    if session.is_cancelled:
        raise Conflict("session_cancelled", f"Session {session.id} is cancelled")

    is_late = is_late_cancellation(start, config.cancellation_deadline_hours, now)

    existing = await find_cancellation(db, actor_type, actor_id, session.id)
    if existing and existing.is_active:
        raise Conflict("already_cancelled", "Session already cancelled")

    if existing:
        # Only one of several concurrent re-activations may flip the row
        result = await db.execute(
            update(Cancellation)
            .where(Cancellation.id == existing.id, Cancellation.is_active.is_(False))
            .values(
                reason=reason,
                is_active=True,
                is_late=is_late,
                cancelled_at=now,
                undone_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise Conflict("already_cancelled", "Session already cancelled")
        await db.commit()
        logger.info(
            "Re-activated cancellation %s for %s %s on session %s (late=%s)",
            existing.id,
            actor_type.value,
            actor_id,
            session.id,
            is_late,
        )
        return CancellationResult(cancellation_id=existing.id, is_late=is_late)

    cancellation = Cancellation(
        training_session_id=session.id,
        actor_type=actor_type,
        actor_id=actor_id,
        reason=reason,
        is_late=is_late,
        is_active=True,
        cancelled_at=now,
    )
    db.add(cancellation)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        winner = await find_cancellation(db, actor_type, actor_id, session.id)
        logger.info(
            "Concurrent cancellation for %s %s on session %s lost to %s",
            actor_type.value,
            actor_id,
            session.id,
            winner.id if winner else None,
        )
        raise Conflict("already_cancelled", "Session already cancelled")

    logger.info(
        "Created cancellation %s for %s %s on session %s (late=%s)",
        cancellation.id,
        actor_type.value,
        actor_id,
        session.id,
        is_late,
    )
    return CancellationResult(cancellation_id=cancellation.id, is_late=is_late)


async def undo_cancellation(
    db: AsyncSession,
    cancellation_id: uuid.UUID,
    *,
    config: PolicyConfig,
    now: Optional[datetime] = None,
) -> Cancellation:
    """Withdraw an active cancellation while its session is still ahead."""
    now = as_utc(now)
    cancellation = await get_cancellation(db, cancellation_id)
    if not cancellation.is_active:
        raise Conflict("cancellation_inactive", "Cancellation is not active")
    if has_started(_session_start(cancellation.session, config), now):
        raise Conflict("session_started", "Session has already started")

    cancellation.is_active = False
    cancellation.undone_at = now
    await db.commit()
    logger.info("Undid cancellation %s", cancellation.id)
    return cancellation


async def edit_cancellation_reason(
    db: AsyncSession,
    cancellation_id: uuid.UUID,
    reason: str,
    *,
    config: PolicyConfig,
    now: Optional[datetime] = None,
) -> Cancellation:
    """Change the reason of an active cancellation before the deadline."""
    reason = _clean_reason(reason)
    now = as_utc(now)
    cancellation = await get_cancellation(db, cancellation_id)
    if not cancellation.is_active:
        raise Conflict("cancellation_inactive", "Cancellation is not active")
    start = _session_start(cancellation.session, config)
    if is_late_cancellation(start, config.cancellation_deadline_hours, now):
        raise Conflict("deadline_passed", "Cancellation deadline has passed")

    cancellation.reason = reason
    await db.commit()
    return cancellation
