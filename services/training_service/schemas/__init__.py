from services.training_service.schemas.main import (
    MIN_REASON_LENGTH,
    AbsenceAlertResponse,
    AlertAcknowledge,
    AttendanceCreate,
    AttendanceResponse,
    AttendanceResult,
    CancellationCreate,
    CancellationReasonUpdate,
    CancellationResponse,
    CancellationResult,
    MaterializeResponse,
    SessionCancel,
    SessionGroupView,
    SessionNotesUpdate,
    SessionView,
)

__all__ = [
    "MIN_REASON_LENGTH",
    "AbsenceAlertResponse",
    "AlertAcknowledge",
    "AttendanceCreate",
    "AttendanceResponse",
    "AttendanceResult",
    "CancellationCreate",
    "CancellationReasonUpdate",
    "CancellationResponse",
    "CancellationResult",
    "MaterializeResponse",
    "SessionCancel",
    "SessionGroupView",
    "SessionNotesUpdate",
    "SessionView",
]
