"""Club-wide policy settings, passed explicitly into every policy decision."""

from typing import Optional

from libs.common.config import Settings, get_settings
from libs.common.errors import InvalidArgument
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class PolicyConfig(BaseModel):
    """Snapshot of the club policy, read once per operation."""

    cancellation_deadline_hours: int = Field(default=2, ge=0)
    absence_alert_threshold: int = Field(default=3, gt=0)
    absence_alert_window_days: int = Field(default=30, gt=0)
    absence_alert_cooldown_days: int = Field(default=14, gt=0)
    absence_alert_enabled: bool = True
    timezone: str = "Europe/Berlin"
    admin_recipients: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @classmethod
    def build(cls, **values) -> "PolicyConfig":
        """Validate values, reporting bad ones as ``InvalidArgument``."""
        try:
            return cls(**values)
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors())
            raise InvalidArgument(
                "invalid_config", f"Invalid policy values: {fields}"
            ) from e

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PolicyConfig":
        settings = settings or get_settings()
        return cls.build(
            cancellation_deadline_hours=settings.CANCELLATION_DEADLINE_HOURS,
            absence_alert_threshold=settings.ABSENCE_ALERT_THRESHOLD,
            absence_alert_window_days=settings.ABSENCE_ALERT_WINDOW_DAYS,
            absence_alert_cooldown_days=settings.ABSENCE_ALERT_COOLDOWN_DAYS,
            absence_alert_enabled=settings.ABSENCE_ALERT_ENABLED,
            timezone=settings.TIMEZONE,
            admin_recipients=(settings.ADMIN_EMAIL,) if settings.ADMIN_EMAIL else (),
        )
