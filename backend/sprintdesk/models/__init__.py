"""SQLAlchemy models package."""

from sprintdesk.models.user import User, UserRole
from sprintdesk.models.project import (
    Attachment,
    Comment,
    Epic,
    Project,
    Sprint,
    SprintStatus,
    Task,
    TaskPriority,
    TaskStatus,
    project_members,
)
from sprintdesk.models.document import (
    Document,
    DocumentComment,
    DocumentVersion,
    Folder,
)
from sprintdesk.models.activity import (
    Activity,
    ActivityType,
    Notification,
    NotificationType,
)
from sprintdesk.models.invite import Invite, InviteStatus, invite_projects

__all__ = [
    # Users
    "User",
    "UserRole",
    # Projects & tasks
    "Project",
    "Sprint",
    "SprintStatus",
    "Epic",
    "Task",
    "TaskStatus",
    "TaskPriority",
    "Comment",
    "Attachment",
    "project_members",
    # Documents
    "Folder",
    "Document",
    "DocumentVersion",
    "DocumentComment",
    # Activity & notifications
    "Activity",
    "ActivityType",
    "Notification",
    "NotificationType",
    # Invites
    "Invite",
    "InviteStatus",
    "invite_projects",
]
