"""Activity and notification models for the task audit trail and alerts."""

from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from sprintdesk.db.base import BaseModel


class ActivityType(str, Enum):
    CREATED = "CREATED"
    DESCRIPTION_UPDATED = "DESCRIPTION_UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    PRIORITY_CHANGED = "PRIORITY_CHANGED"
    ASSIGNED = "ASSIGNED"
    MOVED_TO_SPRINT = "MOVED_TO_SPRINT"
    COMMENT_ADDED = "COMMENT_ADDED"
    SPLIT = "SPLIT"


class NotificationType(str, Enum):
    MENTION = "MENTION"
    ASSIGNED = "ASSIGNED"


class Activity(BaseModel):
    """
    Append-only audit row describing one change to a task.

    Rows are written by the activity recorder and never updated.
    """

    __tablename__ = "activities"

    activity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="CREATED, DESCRIPTION_UPDATED, STATUS_CHANGED, PRIORITY_CHANGED, "
        "ASSIGNED, MOVED_TO_SPRINT, COMMENT_ADDED",
    )
    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    extra_data: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
        comment="Transition labels, e.g. {'from': 'TODO', 'to': 'DONE'}",
    )


class Notification(BaseModel):
    """In-app notification; only the read flag ever changes."""

    __tablename__ = "notifications"

    notification_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="MENTION, ASSIGNED",
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=True,
    )
    comment_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=True,
    )
    sender_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
