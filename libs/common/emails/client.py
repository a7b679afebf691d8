"""
Email client for service-to-service email communication.

Templates and delivery live in the Communications Service; this client only
forwards a template type plus its data.

Usage:
    from libs.common.emails.client import get_email_client

    email_client = get_email_client()

    await email_client.send_template(
        template_type="absence_alert",
        to_emails=["admin@example.com"],
        template_data={"athlete_name": "Jane Doe", "absence_count": 3},
    )
"""

from functools import lru_cache
from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


class EmailClient:
    """
    HTTP client for sending emails through the Communications Service.

    Delivery problems never raise: every failure is logged and reported as
    ``False`` so callers can treat email as best effort.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.COMMUNICATIONS_SERVICE_URL
        self.api_key = api_key or settings.COMMUNICATIONS_API_KEY
        self.timeout = timeout
        self._transport = transport

    def _get_auth_headers(self) -> dict[str, str]:
        return {"X-API-Key": self.api_key, "X-Caller-Service": "training_service"}

    async def send_template(
        self,
        template_type: str,
        to_emails: list[str],
        template_data: dict[str, Any],
    ) -> bool:
        """
        Send a templated email through the Communications Service.

        Template types used by this service:
        - absence_alert: athlete crossed the unexcused-absence threshold

        Args:
            template_type: The template identifier
            to_emails: Recipient email addresses
            template_data: Dict of template variables

        Returns:
            True if the Communications Service accepted the email, False otherwise
        """
        if not to_emails:
            logger.warning("Template email '%s' has no recipients", template_type)
            return False

        payload = {
            "template_type": template_type,
            "to_emails": to_emails,
            "template_data": template_data,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/email/template",
                    json=payload,
                    headers=self._get_auth_headers(),
                )
        except httpx.RequestError as e:
            logger.error("Failed to connect to Communications Service: %s", e)
            return False

        if response.status_code != 200:
            logger.error(
                "Template email API returned %s: %s",
                response.status_code,
                response.text,
            )
            return False

        try:
            return bool(response.json().get("success", False))
        except ValueError:
            logger.error("Template email API returned a non-JSON body")
            return False


@lru_cache
def get_email_client() -> EmailClient:
    """Return a shared EmailClient for the lifetime of the process."""
    return EmailClient()
