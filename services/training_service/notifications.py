"""Outbound notifications for the training service."""

from typing import Any, Mapping, Optional, Protocol, Sequence

from libs.common.emails.client import EmailClient, get_email_client


class Notifier(Protocol):
    """Delivers a message to a set of recipients; returns whether it was sent."""

    async def notify(
        self,
        recipients: Sequence[str],
        subject_context: Mapping[str, Any],
        body_context: Mapping[str, Any],
    ) -> bool: ...


class EmailNotifier:
    """Notifier backed by the communications service's template endpoint.

    ``subject_context["template"]`` picks the email template; both contexts
    are merged into the template data.
    """

    def __init__(self, client: Optional[EmailClient] = None):
        self.client = client or get_email_client()

    async def notify(
        self,
        recipients: Sequence[str],
        subject_context: Mapping[str, Any],
        body_context: Mapping[str, Any],
    ) -> bool:
        template_type = subject_context.get("template", "notification")
        template_data = {
            key: value for key, value in subject_context.items() if key != "template"
        }
        template_data.update(body_context)
        return await self.client.send_template(
            template_type, list(recipients), template_data
        )
