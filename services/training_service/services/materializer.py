"""Turn virtual occurrences into stored sessions, exactly once.

The unique constraint on (recurring_training_id, date) is the only
synchronisation: concurrent callers all try to insert, one wins, the rest
catch the violation and read the winner's row.
"""

import uuid
from typing import Optional, Union

from libs.common.errors import Conflict, InvalidArgument, NotFound
from libs.common.logging import get_logger
from services.training_service.models import (
    RecurringTraining,
    SessionGroup,
    SessionGroupTrainer,
    TrainingGroup,
    TrainingSession,
)
from services.training_service.services.occurrences import is_occurrence
from services.training_service.services.virtual_sessions import (
    VirtualSessionRef,
    parse_session_ref,
)
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

# Creation attempts before a uniqueness conflict is reported to the caller
MAX_CREATE_ATTEMPTS = 2


async def find_session(
    db: AsyncSession, recurring_training_id: uuid.UUID, day
) -> Optional[TrainingSession]:
    result = await db.execute(
        select(TrainingSession).where(
            TrainingSession.recurring_training_id == recurring_training_id,
            TrainingSession.date == day,
        )
    )
    return result.scalar_one_or_none()


async def _load_training(
    db: AsyncSession, recurring_training_id: uuid.UUID
) -> Optional[RecurringTraining]:
    result = await db.execute(
        select(RecurringTraining)
        .options(
            selectinload(RecurringTraining.groups).selectinload(TrainingGroup.trainers)
        )
        .where(RecurringTraining.id == recurring_training_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def build_session(training: RecurringTraining, day) -> TrainingSession:
    """New session for ``day`` with a snapshot of the training's groups."""
    # groups is always assigned, even when empty, so it stays loaded after commit
    return TrainingSession(
        recurring_training_id=training.id,
        date=day,
        day_of_week=training.day_of_week,
        start_time=training.start_time,
        end_time=training.end_time,
        groups=[
            SessionGroup(
                training_group_id=group.id,
                name=group.name,
                sort_order=group.sort_order,
                trainers=[
                    SessionGroupTrainer(trainer_id=link.trainer_id)
                    for link in group.trainers
                ],
            )
            for group in training.groups
        ],
    )


async def load_occurrence_training(
    db: AsyncSession, ref: VirtualSessionRef
) -> RecurringTraining:
    """The active training behind ``ref``, checked to occur on its date.

    Raises:
        NotFound: the recurring training does not exist
        InvalidArgument: the training is inactive or does not occur on that date
    """
    training = await _load_training(db, ref.recurring_training_id)
    if not training:
        raise NotFound(
            "training_not_found",
            f"Recurring training {ref.recurring_training_id} not found",
        )
    if not training.is_active:
        raise InvalidArgument(
            "training_inactive", f"Recurring training {training.id} is inactive"
        )
    if not is_occurrence(training, ref.date):
        raise InvalidArgument(
            "not_an_occurrence",
            f"Training {training.id} does not take place on {ref.date}",
        )
    return training


async def materialize(
    db: AsyncSession, ref: Union[str, VirtualSessionRef]
) -> TrainingSession:
    """Return the stored session for a virtual reference, creating it if needed.

    Idempotent: an existing session is returned unchanged.

    Raises:
        NotFound: the recurring training does not exist
        InvalidArgument: the training is inactive or does not occur on that date
        Conflict: creation kept colliding without a readable winner
    """
    if not isinstance(ref, VirtualSessionRef):
        ref = VirtualSessionRef.parse(ref)

    existing = await find_session(db, ref.recurring_training_id, ref.date)
    if existing:
        return existing

    for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
        training = await load_occurrence_training(db, ref)
        session = build_session(training, ref.date)
        db.add(session)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            winner = await find_session(db, ref.recurring_training_id, ref.date)
            if winner:
                logger.info(
                    "Materialization race for %s resolved to session %s",
                    ref.encode(),
                    winner.id,
                )
                return winner
            logger.warning(
                "Materialization of %s conflicted without a stored row (attempt %d)",
                ref.encode(),
                attempt,
            )
            continue

        logger.info(
            "Materialized %s as session %s with %d groups",
            ref.encode(),
            session.id,
            len(training.groups),
        )
        return session

    raise Conflict(
        "materialization_conflict", f"Could not materialize {ref.encode()}"
    )


async def get_session(db: AsyncSession, session_id: uuid.UUID) -> TrainingSession:
    result = await db.execute(
        select(TrainingSession).where(TrainingSession.id == session_id)
    )
    session = result.scalar_one_or_none()
    if not session:
        raise NotFound("session_not_found", f"Session {session_id} not found")
    return session


async def resolve_session(
    db: AsyncSession, ref: Union[str, uuid.UUID, VirtualSessionRef]
) -> TrainingSession:
    """Stored session for any reference, materializing virtual ones."""
    parsed = parse_session_ref(ref)
    if isinstance(parsed, VirtualSessionRef):
        return await materialize(db, parsed)
    return await get_session(db, parsed)
