"""Dependencies shared by the training service routers."""

from libs.common.config import get_settings
from services.training_service.notifications import EmailNotifier, Notifier
from services.training_service.policy_config import PolicyConfig


def get_policy_config() -> PolicyConfig:
    """Club policy for the current request, read from settings."""
    return PolicyConfig.from_settings(get_settings())


def get_notifier() -> Notifier:
    return EmailNotifier()
