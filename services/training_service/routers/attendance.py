"""Attendance marking."""

from typing import List

from fastapi import APIRouter, Depends
from libs.db.session import get_async_db
from services.training_service.notifications import Notifier
from services.training_service.policy_config import PolicyConfig
from services.training_service.routers._shared import get_notifier, get_policy_config
from services.training_service.schemas import (
    AttendanceCreate,
    AttendanceResponse,
    AttendanceResult,
)
from services.training_service.services.attendance import (
    list_session_attendance,
    record_absence,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/sessions", tags=["attendance"])


@router.post("/{ref}/attendance", response_model=AttendanceResult)
async def mark_attendance(
    ref: str,
    payload: AttendanceCreate,
    config: PolicyConfig = Depends(get_policy_config),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Record attendance. Idempotent upsert per athlete and session.

    Leave ``status`` empty to record an absence classified from the athlete's
    cancellation.
    """
    return await record_absence(
        db,
        payload.athlete_id,
        ref,
        config=config,
        notifier=notifier,
        status=payload.status,
        marked_by=payload.marked_by,
        notes=payload.notes,
    )


@router.get("/{ref}/attendance", response_model=List[AttendanceResponse])
async def get_attendance(ref: str, db: AsyncSession = Depends(get_async_db)):
    return await list_session_attendance(db, ref)
