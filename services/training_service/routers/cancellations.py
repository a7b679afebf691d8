"""Athlete and trainer cancellations."""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from libs.db.session import get_async_db
from services.training_service.models import CancellationActor
from services.training_service.policy_config import PolicyConfig
from services.training_service.routers._shared import get_policy_config
from services.training_service.schemas import (
    CancellationCreate,
    CancellationReasonUpdate,
    CancellationResponse,
    CancellationResult,
)
from services.training_service.services.cancellations import (
    cancel,
    edit_cancellation_reason,
    list_active_cancellations,
    undo_cancellation,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["cancellations"])


@router.post(
    "/sessions/{ref}/cancellations",
    response_model=CancellationResult,
    status_code=status.HTTP_201_CREATED,
)
async def create_cancellation(
    ref: str,
    payload: CancellationCreate,
    config: PolicyConfig = Depends(get_policy_config),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Sign off from a session. Late cancellations are accepted and flagged.
    """
    return await cancel(
        db,
        ref,
        actor_type=payload.actor_type,
        actor_id=payload.actor_id,
        reason=payload.reason,
        config=config,
    )


@router.get("/cancellations", response_model=List[CancellationResponse])
async def list_cancellations(
    actor_id: uuid.UUID,
    actor_type: CancellationActor = CancellationActor.ATHLETE,
    from_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_active_cancellations(db, actor_type, actor_id, from_date)


@router.patch("/cancellations/{cancellation_id}", response_model=CancellationResponse)
async def update_cancellation_reason(
    cancellation_id: uuid.UUID,
    payload: CancellationReasonUpdate,
    config: PolicyConfig = Depends(get_policy_config),
    db: AsyncSession = Depends(get_async_db),
):
    return await edit_cancellation_reason(
        db, cancellation_id, payload.reason, config=config
    )


@router.delete("/cancellations/{cancellation_id}", response_model=CancellationResponse)
async def delete_cancellation(
    cancellation_id: uuid.UUID,
    config: PolicyConfig = Depends(get_policy_config),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Undo a cancellation. The record is kept and marked inactive.
    """
    return await undo_cancellation(db, cancellation_id, config=config)
