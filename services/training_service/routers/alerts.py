"""Absence alerts for the club admins."""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from libs.db.session import get_async_db
from services.training_service.schemas import AbsenceAlertResponse, AlertAcknowledge
from services.training_service.services.absence_alerts import (
    acknowledge_alert,
    list_alerts,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=List[AbsenceAlertResponse])
async def get_alerts(
    athlete_id: Optional[uuid.UUID] = Query(None),
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(50, ge=1, le=200),
    unacknowledged_only: bool = Query(False),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_alerts(
        db,
        athlete_id=athlete_id,
        days=days,
        limit=limit,
        unacknowledged_only=unacknowledged_only,
    )


@router.post("/{alert_id}/acknowledge", response_model=AbsenceAlertResponse)
async def acknowledge(
    alert_id: uuid.UUID,
    payload: AlertAcknowledge,
    db: AsyncSession = Depends(get_async_db),
):
    return await acknowledge_alert(db, alert_id, payload.acknowledged_by)
