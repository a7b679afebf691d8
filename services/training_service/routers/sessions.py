"""Session listing, materialization and whole-session changes."""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from libs.db.session import get_async_db
from services.training_service.schemas import (
    MaterializeResponse,
    SessionCancel,
    SessionNotesUpdate,
    SessionView,
)
from services.training_service.services.materializer import materialize
from services.training_service.services.session_ops import (
    cancel_session,
    update_session_notes,
)
from services.training_service.services.virtual_sessions import (
    get_session_view,
    list_occurrences,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("", response_model=List[SessionView])
async def list_sessions(
    start: date = Query(..., description="First day of the window (inclusive)"),
    end: date = Query(..., description="Last day of the window (inclusive)"),
    recurring_training_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Every occurrence in the window, stored or virtual, ordered by date and time.
    """
    return await list_occurrences(db, start, end, recurring_training_id)


@router.post("/{ref}/materialize", response_model=MaterializeResponse)
async def materialize_session(ref: str, db: AsyncSession = Depends(get_async_db)):
    """
    Persist a virtual occurrence. Idempotent.
    """
    session = await materialize(db, ref)
    return MaterializeResponse(session_id=session.id, ref=str(session.id))


@router.post("/{ref}/cancel", response_model=SessionView)
async def cancel_whole_session(
    ref: str,
    payload: SessionCancel,
    db: AsyncSession = Depends(get_async_db),
):
    session = await cancel_session(db, ref, payload.cancelled_by, payload.reason)
    return await get_session_view(db, session.id)


@router.patch("/{ref}/notes", response_model=SessionView)
async def update_notes(
    ref: str,
    payload: SessionNotesUpdate = Body(...),
    db: AsyncSession = Depends(get_async_db),
):
    session = await update_session_notes(db, ref, payload.notes)
    return await get_session_view(db, session.id)
