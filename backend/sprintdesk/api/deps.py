"""Shared request dependencies."""

from typing import Annotated

from fastapi import Depends

from sprintdesk.services.notification import EmailSink
from sprintdesk.tasks import queue_email


def get_email_sink() -> EmailSink:
    """Where staged emails go after commit; the Celery queue by default."""
    return queue_email


EmailSinkDep = Annotated[EmailSink, Depends(get_email_sink)]
