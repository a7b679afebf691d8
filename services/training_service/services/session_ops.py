"""Changes to a whole session occurrence: trainer cancellation and notes."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import as_utc
from libs.common.errors import Conflict
from libs.common.logging import get_logger
from services.training_service.models import TrainingSession
from services.training_service.services.materializer import resolve_session
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def cancel_session(
    db: AsyncSession,
    ref,
    cancelled_by: uuid.UUID,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TrainingSession:
    """Call off one occurrence for everybody, materializing it if needed."""
    session = await resolve_session(db, ref)
    if session.is_cancelled:
        raise Conflict(
            "already_cancelled", f"Session {session.id} is already cancelled"
        )

    session.is_cancelled = True
    session.cancellation_reason = (reason or "").strip() or None
    session.cancelled_by = cancelled_by
    session.cancelled_at = as_utc(now)
    await db.commit()
    logger.info("Session %s cancelled by %s", session.id, cancelled_by)
    return session


async def update_session_notes(
    db: AsyncSession, ref, notes: Optional[str]
) -> TrainingSession:
    session = await resolve_session(db, ref)
    session.notes = (notes or "").strip() or None
    await db.commit()
    return session
