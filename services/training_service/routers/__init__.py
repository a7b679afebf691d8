"""Training service routers."""

from services.training_service.routers.alerts import router as alerts_router
from services.training_service.routers.attendance import router as attendance_router
from services.training_service.routers.cancellations import (
    router as cancellations_router,
)
from services.training_service.routers.sessions import router as sessions_router

__all__ = [
    "alerts_router",
    "attendance_router",
    "cancellations_router",
    "sessions_router",
]
