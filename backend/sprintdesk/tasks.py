"""Celery background tasks."""

import asyncio

import structlog

from sprintdesk.worker import celery_app

logger = structlog.get_logger()


@celery_app.task(
    bind=True,
    name="sprintdesk.tasks.send_email",
    max_retries=3,
    default_retry_delay=60,
)
def send_email(self, message: dict) -> dict:
    """Deliver one rendered email through the configured provider.

    Args:
        message: ``EmailMessage`` dumped to JSON-compatible dict

    Returns:
        Dict with status and provider message id
    """
    from sprintdesk.services.email import BrevoEmailClient, EmailDeliveryError, EmailMessage

    email = EmailMessage.model_validate(message)

    try:
        message_id = asyncio.run(BrevoEmailClient().send(email))
    except EmailDeliveryError as e:
        logger.warning(
            "email_delivery_failed",
            kind=email.kind.value,
            error=str(e),
            attempt=self.request.retries,
        )
        raise self.retry(exc=e)

    return {"status": "sent", "kind": email.kind.value, "message_id": message_id}


def queue_email(message) -> None:
    """Hand an ``EmailMessage`` to the worker queue.

    Raises whatever the broker raises; callers treat delivery as best-effort.
    """
    send_email.delay(message.model_dump(mode="json"))
