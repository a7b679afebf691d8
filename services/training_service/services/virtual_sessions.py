"""Virtual sessions: occurrences of recurring trainings that have no stored row.

Only occurrences that carry an exception (cancellation, notes, attendance)
are persisted. Everything else is computed from the recurring training on
each query and merged with the stored rows here.
"""

import datetime as dt
import uuid
from typing import Dict, Iterable, List, Mapping, Optional, Union

from libs.common.datetime_utils import to_calendar_date
from libs.common.errors import InvalidArgument, NotFound
from pydantic import BaseModel, ConfigDict
from services.training_service.models import (
    AttendanceRecord,
    RecurringTraining,
    SessionState,
    TrainingSession,
)
from services.training_service.schemas import SessionGroupView, SessionView
from services.training_service.services.occurrences import rule_occurrences
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

VIRTUAL_PREFIX = "virtual_"


class VirtualSessionRef(BaseModel):
    """Reference to one occurrence of a recurring training.

    Serialized as ``virtual_<training uuid>_<YYYY-MM-DD>``; the string form is
    stable and may be stored or linked externally.
    """

    recurring_training_id: uuid.UUID
    date: dt.date

    model_config = ConfigDict(frozen=True)

    def encode(self) -> str:
        return f"{VIRTUAL_PREFIX}{self.recurring_training_id}_{self.date.isoformat()}"

    def __str__(self) -> str:
        return self.encode()

    @classmethod
    def parse(cls, text: str) -> "VirtualSessionRef":
        """Decode a reference produced by ``encode``.

        Only the canonical form is accepted, so ``parse(s).encode() == s``.
        """
        if not isinstance(text, str) or not text.startswith(VIRTUAL_PREFIX):
            raise InvalidArgument(
                "malformed_virtual_ref", f"Not a virtual session reference: {text!r}"
            )
        training_part, sep, date_part = text[len(VIRTUAL_PREFIX) :].rpartition("_")
        if not sep:
            raise InvalidArgument(
                "malformed_virtual_ref", f"Missing date in reference: {text!r}"
            )
        try:
            training_id = uuid.UUID(training_part)
            day = dt.date.fromisoformat(date_part)
        except ValueError as e:
            raise InvalidArgument(
                "malformed_virtual_ref", f"Malformed reference {text!r}: {e}"
            ) from e
        if str(training_id) != training_part or day.isoformat() != date_part:
            raise InvalidArgument(
                "malformed_virtual_ref", f"Non-canonical reference: {text!r}"
            )
        return cls(recurring_training_id=training_id, date=day)


SessionRef = Union[uuid.UUID, VirtualSessionRef]


def parse_session_ref(text: Union[str, SessionRef]) -> SessionRef:
    """Stored session id or virtual reference, whichever ``text`` holds."""
    if isinstance(text, (uuid.UUID, VirtualSessionRef)):
        return text
    if text.startswith(VIRTUAL_PREFIX):
        return VirtualSessionRef.parse(text)
    try:
        return uuid.UUID(text)
    except ValueError as e:
        raise InvalidArgument(
            "malformed_session_ref", f"Not a session id or virtual reference: {text!r}"
        ) from e


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


def _stored_view(
    session, training_name: Optional[str], attendance_counts: Mapping[uuid.UUID, int]
) -> SessionView:
    attendance_count = attendance_counts.get(session.id, 0)
    return SessionView(
        ref=str(session.id),
        id=session.id,
        recurring_training_id=session.recurring_training_id,
        training_name=training_name,
        date=session.date,
        day_of_week=session.day_of_week,
        start_time=session.start_time,
        end_time=session.end_time,
        state=SessionState.MATERIALIZED,
        is_cancelled=bool(session.is_cancelled),
        cancellation_reason=session.cancellation_reason,
        cancelled_by=session.cancelled_by,
        cancelled_at=session.cancelled_at,
        notes=session.notes,
        attendance_count=attendance_count,
        has_attendance=attendance_count > 0,
        groups=[
            SessionGroupView(
                id=group.id, training_group_id=group.training_group_id, name=group.name
            )
            for group in session.groups
        ],
    )


def _virtual_view(rule, day: dt.date) -> SessionView:
    return SessionView(
        ref=VirtualSessionRef(recurring_training_id=rule.id, date=day).encode(),
        recurring_training_id=rule.id,
        training_name=rule.name,
        date=day,
        day_of_week=rule.day_of_week,
        start_time=rule.start_time,
        end_time=rule.end_time,
        state=SessionState.VIRTUAL,
        groups=[
            SessionGroupView(training_group_id=group.id, name=group.name)
            for group in rule.groups
        ],
    )


def _sort_key(view: SessionView):
    return (view.date, view.start_time, view.training_name or "")


def project_sessions(
    rules: Iterable,
    stored_sessions: Iterable,
    start: Union[dt.date, dt.datetime],
    end: Union[dt.date, dt.datetime],
    attendance_counts: Optional[Mapping[uuid.UUID, int]] = None,
) -> List[SessionView]:
    """Merge computed occurrences with stored sessions, one view per occurrence.

    A stored session always wins over the computed one for the same training
    and date. Stored sessions with no computed counterpart (training
    deactivated or its pattern changed since) are still returned.
    """
    start = to_calendar_date(start)
    end = to_calendar_date(end)
    if end < start:
        raise InvalidArgument(
            "invalid_window", f"Window end {end} is before start {start}"
        )
    attendance_counts = attendance_counts or {}
    rules = list(rules)
    rules_by_id = {rule.id: rule for rule in rules}

    stored_by_key: Dict[tuple, object] = {}
    unlinked = []
    for session in stored_sessions:
        if not start <= session.date <= end:
            continue
        if session.recurring_training_id is None:
            unlinked.append(session)
        else:
            stored_by_key[(session.recurring_training_id, session.date)] = session

    views: List[SessionView] = []
    seen = set()
    for rule in rules:
        for day in rule_occurrences(rule, start, end):
            key = (rule.id, day)
            if key in seen:
                continue
            seen.add(key)
            stored = stored_by_key.get(key)
            if stored is not None:
                views.append(_stored_view(stored, rule.name, attendance_counts))
            else:
                views.append(_virtual_view(rule, day))

    for key, stored in stored_by_key.items():
        if key in seen:
            continue
        seen.add(key)
        rule = rules_by_id.get(key[0]) or getattr(stored, "recurring_training", None)
        views.append(
            _stored_view(stored, rule.name if rule else None, attendance_counts)
        )

    for stored in unlinked:
        views.append(_stored_view(stored, None, attendance_counts))

    views.sort(key=_sort_key)
    return views


async def list_occurrences(
    db: AsyncSession,
    start: Union[dt.date, dt.datetime],
    end: Union[dt.date, dt.datetime],
    recurring_training_id: Optional[uuid.UUID] = None,
) -> List[SessionView]:
    """All session views in ``[start, end]``, stored and virtual."""
    start = to_calendar_date(start)
    end = to_calendar_date(end)
    if end < start:
        raise InvalidArgument(
            "invalid_window", f"Window end {end} is before start {start}"
        )

    rule_query = (
        select(RecurringTraining)
        .options(selectinload(RecurringTraining.groups))
        .where(
            RecurringTraining.is_active.is_(True),
            or_(
                RecurringTraining.valid_from.is_(None),
                RecurringTraining.valid_from <= end,
            ),
            or_(
                RecurringTraining.valid_until.is_(None),
                RecurringTraining.valid_until >= start,
            ),
        )
    )
    session_query = (
        select(TrainingSession)
        .options(
            selectinload(TrainingSession.groups),
            selectinload(TrainingSession.recurring_training),
        )
        .where(TrainingSession.date >= start, TrainingSession.date <= end)
    )
    if recurring_training_id:
        rule_query = rule_query.where(RecurringTraining.id == recurring_training_id)
        session_query = session_query.where(
            TrainingSession.recurring_training_id == recurring_training_id
        )

    rules = (await db.execute(rule_query)).scalars().all()
    sessions = (await db.execute(session_query)).scalars().all()

    attendance_counts: Dict[uuid.UUID, int] = {}
    if sessions:
        count_query = (
            select(
                AttendanceRecord.training_session_id, func.count(AttendanceRecord.id)
            )
            .where(
                AttendanceRecord.training_session_id.in_([s.id for s in sessions])
            )
            .group_by(AttendanceRecord.training_session_id)
        )
        attendance_counts = dict((await db.execute(count_query)).all())

    return project_sessions(rules, sessions, start, end, attendance_counts)


async def get_session_view(db: AsyncSession, session_id: uuid.UUID) -> SessionView:
    """View of one stored session."""
    result = await db.execute(
        select(TrainingSession)
        .options(
            selectinload(TrainingSession.groups),
            selectinload(TrainingSession.recurring_training),
        )
        .where(TrainingSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    session = result.scalar_one_or_none()
    if not session:
        raise NotFound("session_not_found", f"Session {session_id} not found")
    count = await db.execute(
        select(func.count(AttendanceRecord.id)).where(
            AttendanceRecord.training_session_id == session_id
        )
    )
    training = session.recurring_training
    return _stored_view(
        session, training.name if training else None, {session_id: count.scalar_one()}
    )
