"""Services package."""

from sprintdesk.services.account_deletion import AccountDeletionService, DeletionReport
from sprintdesk.services.activity import ActivityRecorder
from sprintdesk.services.email import BrevoEmailClient, EmailMessage
from sprintdesk.services.invites import InviteService
from sprintdesk.services.notification import NotificationDispatcher
from sprintdesk.services.sequencer import OrderScope, SequencerService
from sprintdesk.services.task_keys import TaskKeyIssuer
from sprintdesk.services.task_mutation import TaskMutationService

__all__ = [
    "AccountDeletionService",
    "DeletionReport",
    "ActivityRecorder",
    "BrevoEmailClient",
    "EmailMessage",
    "InviteService",
    "NotificationDispatcher",
    "OrderScope",
    "SequencerService",
    "TaskKeyIssuer",
    "TaskMutationService",
]
