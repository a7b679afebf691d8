"""FastAPI application for the Training Service."""

from fastapi import FastAPI
from libs.common.logging import configure_logging
from services.training_service.routers import (
    alerts_router,
    attendance_router,
    cancellations_router,
    sessions_router,
)


def create_app() -> FastAPI:
    """Create and configure the Training Service FastAPI app."""
    configure_logging()

    app = FastAPI(
        title="Club Training Service",
        version="0.1.0",
        description="Recurring trainings, sessions, cancellations and absences.",
    )

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "training"}

    app.include_router(sessions_router)
    app.include_router(cancellations_router)
    app.include_router(attendance_router)
    app.include_router(alerts_router)

    return app


app = create_app()
