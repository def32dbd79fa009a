"""Outbound email payloads and the Brevo delivery client.

The engine only decides that an email goes out and with what payload.
Delivery happens in the Celery worker (see ``sprintdesk.tasks``).
"""

from enum import Enum
from html import escape

import httpx
import structlog
from pydantic import BaseModel

from sprintdesk.config import Settings, get_settings

logger = structlog.get_logger()


class EmailKind(str, Enum):
    INVITE = "invite"
    TASK_ASSIGNED = "task_assigned"
    MENTION = "mention"
    COMMENT = "comment"


class EmailMessage(BaseModel):
    """A fully rendered email ready for the delivery sink."""

    kind: EmailKind
    to_email: str
    to_name: str | None = None
    subject: str
    text: str
    html: str | None = None


def _excerpt(content: str, limit: int = 280) -> str:
    content = content.strip()
    if len(content) <= limit:
        return content
    return content[: limit - 3].rstrip() + "..."


def build_invite_email(
    email: str,
    inviter_name: str,
    invite_url: str,
    project_names: list[str],
    expire_days: int = 7,
) -> EmailMessage:
    projects = ", ".join(project_names) if project_names else "a project"
    text = (
        f"{inviter_name} invited you to join {projects} on Sprintdesk.\n\n"
        f"Accept the invitation: {invite_url}\n\n"
        f"This link expires in {expire_days} days."
    )
    html = (
        f"<p><strong>{escape(inviter_name)}</strong> invited you to join "
        f"{escape(projects)} on Sprintdesk.</p>"
        f'<p><a href="{escape(invite_url)}">Accept the invitation</a></p>'
    )
    return EmailMessage(
        kind=EmailKind.INVITE,
        to_email=email,
        subject=f"{inviter_name} invited you to Sprintdesk",
        text=text,
        html=html,
    )


def build_assignment_email(
    recipient_email: str,
    recipient_name: str,
    assigner_name: str,
    task_key: str,
    task_title: str,
    task_status: str,
    task_priority: str | None,
    sprint_name: str | None,
    task_url: str,
) -> EmailMessage:
    lines = [
        f"Hi {recipient_name},",
        "",
        f"{assigner_name} assigned you {task_key}: {task_title}",
        f"Status: {task_status}",
    ]
    if task_priority:
        lines.append(f"Priority: {task_priority}")
    if sprint_name:
        lines.append(f"Sprint: {sprint_name}")
    lines += ["", f"View task: {task_url}"]
    return EmailMessage(
        kind=EmailKind.TASK_ASSIGNED,
        to_email=recipient_email,
        to_name=recipient_name,
        subject=f"[{task_key}] {task_title} was assigned to you",
        text="\n".join(lines),
    )


def build_mention_email(
    recipient_email: str,
    recipient_name: str,
    author_name: str,
    task_key: str,
    task_title: str,
    comment: str,
    task_url: str,
) -> EmailMessage:
    text = (
        f"Hi {recipient_name},\n\n"
        f"{author_name} mentioned you on {task_key}: {task_title}\n\n"
        f"\"{_excerpt(comment)}\"\n\n"
        f"View task: {task_url}"
    )
    return EmailMessage(
        kind=EmailKind.MENTION,
        to_email=recipient_email,
        to_name=recipient_name,
        subject=f"{author_name} mentioned you on {task_key}",
        text=text,
    )


def build_comment_email(
    recipient_email: str,
    recipient_name: str,
    author_name: str,
    task_key: str,
    task_title: str,
    comment: str,
    task_url: str,
) -> EmailMessage:
    text = (
        f"Hi {recipient_name},\n\n"
        f"{author_name} commented on {task_key}: {task_title}\n\n"
        f"\"{_excerpt(comment)}\"\n\n"
        f"View task: {task_url}"
    )
    return EmailMessage(
        kind=EmailKind.COMMENT,
        to_email=recipient_email,
        to_name=recipient_name,
        subject=f"New comment on {task_key}",
        text=text,
    )


class EmailDeliveryError(Exception):
    """The provider rejected or failed to accept a message."""


class BrevoEmailClient:
    """Client for the Brevo transactional email API."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return bool(self.settings.brevo_api_key.get_secret_value())

    async def send(self, message: EmailMessage) -> str | None:
        """Send a message; returns the provider message id.

        Returns None without sending when no API key is configured.
        """
        if not self.configured:
            logger.warning("email_provider_not_configured", kind=message.kind.value)
            return None

        payload = {
            "sender": {
                "name": self.settings.email_from_name,
                "email": self.settings.email_from_address,
            },
            "to": [
                {
                    "email": message.to_email,
                    "name": message.to_name or message.to_email.split("@")[0],
                }
            ],
            "subject": message.subject,
            "textContent": message.text,
            "htmlContent": message.html or message.text,
        }
        headers = {
            "accept": "application/json",
            "api-key": self.settings.brevo_api_key.get_secret_value(),
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.settings.email_timeout) as client:
                response = await client.post(
                    self.settings.brevo_api_url, json=payload, headers=headers
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise EmailDeliveryError(
                f"Brevo rejected email: {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Brevo request failed: {e}") from e

        message_id = data.get("messageId")
        logger.info("email_sent", kind=message.kind.value, message_id=message_id)
        return message_id
