"""Notification dispatcher: assignment and mention notifications, outbound email."""

import re
from collections.abc import Callable
from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.config import Settings, get_settings
from sprintdesk.models.activity import Notification, NotificationType
from sprintdesk.models.project import Comment, Sprint, Task, project_members
from sprintdesk.models.user import User, UserRole
from sprintdesk.services.activity import Assigned
from sprintdesk.services.email import (
    EmailMessage,
    build_assignment_email,
    build_comment_email,
    build_mention_email,
)
from sprintdesk.tasks import queue_email

logger = structlog.get_logger()

EmailSink = Callable[[EmailMessage], None]

# @name tokens; trailing sentence punctuation is stripped afterwards
MENTION_PATTERN = re.compile(r"@([\w.+-]+)")


def _normalize(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


def parse_mentions(content: str) -> list[str]:
    """Extract normalized @mention tokens, deduplicated, in order of appearance."""
    seen: set[str] = set()
    tokens = []
    for raw in MENTION_PATTERN.findall(content):
        token = _normalize(raw)
        if token and token not in seen:
            seen.add(token)
            tokens.append(token)
    return tokens


class NotificationDispatcher:
    """Creates in-app notifications and stages emails for after commit.

    Emails are collected in an outbox during the mutation and handed to
    the sink by ``dispatch_pending`` once the caller has committed. A sink
    failure is logged and never propagates.
    """

    def __init__(
        self,
        db: AsyncSession,
        email_sink: EmailSink | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.email_sink = email_sink or queue_email
        self.settings = settings or get_settings()
        self._outbox: list[EmailMessage] = []

    def task_url(self, task_id: UUID) -> str:
        return f"{self.settings.app_base_url}/?task={task_id}"

    # =========================================================================
    # Outbox
    # =========================================================================

    def queue(self, message: EmailMessage) -> None:
        self._outbox.append(message)

    @property
    def pending(self) -> list[EmailMessage]:
        return list(self._outbox)

    def dispatch_pending(self) -> int:
        """Hand staged emails to the sink. Returns how many were accepted."""
        messages, self._outbox = self._outbox, []
        accepted = 0
        for message in messages:
            try:
                self.email_sink(message)
                accepted += 1
            except Exception as e:
                logger.warning(
                    "email_dispatch_failed",
                    kind=message.kind.value,
                    error=str(e),
                )
        return accepted

    def discard_pending(self) -> None:
        self._outbox.clear()

    # =========================================================================
    # Assignment
    # =========================================================================

    async def notify_assignment(
        self,
        task: Task,
        change: Assigned,
        actor: User,
    ) -> Notification | None:
        """Notify a new assignee. Unassignment and self-assignment are silent."""
        if change.assignee_id is None:
            return None
        if change.assignee_id == actor.id:
            logger.debug(
                "skipping_self_notification",
                user_id=str(actor.id),
                task_id=str(task.id),
            )
            return None

        assignee = await self.db.get(User, change.assignee_id)
        if assignee is None:
            return None

        notification = Notification(
            notification_type=NotificationType.ASSIGNED.value,
            user_id=assignee.id,
            task_id=task.id,
            sender_id=actor.id,
            is_read=False,
        )
        self.db.add(notification)
        await self.db.flush()

        sprint = await self.db.get(Sprint, task.sprint_id) if task.sprint_id else None
        self.queue(
            build_assignment_email(
                recipient_email=assignee.email,
                recipient_name=assignee.display_name,
                assigner_name=actor.display_name,
                task_key=task.task_key or "TASK",
                task_title=task.title,
                task_status=task.status,
                task_priority=task.priority,
                sprint_name=sprint.name if sprint else None,
                task_url=self.task_url(task.id),
            )
        )

        logger.info(
            "assignment_notification_created",
            notification_id=str(notification.id),
            task_id=str(task.id),
            user_id=str(assignee.id),
        )
        return notification

    # =========================================================================
    # Mentions
    # =========================================================================

    async def users_with_access(self, project_id: UUID) -> Sequence[User]:
        """Project members plus every admin."""
        member_ids = select(project_members.c.user_id).where(
            project_members.c.project_id == project_id
        )
        result = await self.db.execute(
            select(User)
            .where(or_(User.role == UserRole.ADMIN.value, User.id.in_(member_ids)))
            .order_by(User.created_at, User.id)
        )
        return result.scalars().all()

    def resolve_mentions(self, tokens: list[str], candidates: Sequence[User]) -> list[User]:
        """Resolve tokens against display names (spaces ignored) or email local parts.

        A token matching several users resolves to all of them.
        """
        resolved: list[User] = []
        seen: set[UUID] = set()
        for token in tokens:
            matches = [
                user
                for user in candidates
                if _normalize(user.display_name) == token
                or _normalize(user.email.split("@")[0]) == token
            ]
            if len(matches) > 1:
                logger.warning(
                    "ambiguous_mention",
                    token=token,
                    user_ids=[str(u.id) for u in matches],
                )
            for user in matches:
                if user.id not in seen:
                    seen.add(user.id)
                    resolved.append(user)
        return resolved

    async def notify_mentions(
        self,
        task: Task,
        comment: Comment,
        author: User,
        mention_ids: list[UUID] | None = None,
    ) -> list[Notification]:
        """Create one MENTION notification per resolved user, author excluded.

        Users come from ``@name`` tokens in the comment plus any explicit
        ``mention_ids``; both are limited to users with project access.
        """
        candidates = await self.users_with_access(task.project_id)
        mentioned = self.resolve_mentions(parse_mentions(comment.content), candidates)

        if mention_ids:
            by_id = {user.id: user for user in candidates}
            known = {user.id for user in mentioned}
            for user_id in mention_ids:
                user = by_id.get(user_id)
                if user is not None and user_id not in known:
                    known.add(user_id)
                    mentioned.append(user)

        notifications = []
        for user in mentioned:
            if user.id == author.id:
                continue
            notification = Notification(
                notification_type=NotificationType.MENTION.value,
                user_id=user.id,
                task_id=task.id,
                comment_id=comment.id,
                sender_id=author.id,
                is_read=False,
            )
            self.db.add(notification)
            notifications.append(notification)
            self.queue(
                build_mention_email(
                    recipient_email=user.email,
                    recipient_name=user.display_name,
                    author_name=author.display_name,
                    task_key=task.task_key or "TASK",
                    task_title=task.title,
                    comment=comment.content,
                    task_url=self.task_url(task.id),
                )
            )

        if notifications:
            await self.db.flush()
            logger.info(
                "mention_notifications_created",
                comment_id=str(comment.id),
                count=len(notifications),
            )
        return notifications

    async def queue_comment_emails(
        self,
        task: Task,
        comment: Comment,
        author: User,
        already_notified: set[UUID],
    ) -> None:
        """Email the assignee and the creator about a comment, once each."""
        notified = set(already_notified) | {author.id}
        for user_id in (task.assignee_id, task.created_by_id):
            if user_id is None or user_id in notified:
                continue
            user = await self.db.get(User, user_id)
            if user is None:
                continue
            notified.add(user_id)
            self.queue(
                build_comment_email(
                    recipient_email=user.email,
                    recipient_name=user.display_name,
                    author_name=author.display_name,
                    task_key=task.task_key or "TASK",
                    task_title=task.title,
                    comment=comment.content,
                    task_url=self.task_url(task.id),
                )
            )

    # =========================================================================
    # Read state
    # =========================================================================

    async def list_for_user(
        self, user_id: UUID, limit: int | None = None
    ) -> Sequence[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit or self.settings.notification_page_size)
        )
        return result.scalars().all()

    async def mark_read(self, user_id: UUID, notification_ids: list[UUID]) -> int:
        """Mark the user's own notifications read; others' ids are ignored."""
        if not notification_ids:
            return 0
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.id.in_(notification_ids),
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True)
        )
        await self.db.flush()
        return result.rowcount

    async def mark_all_read(self, user_id: UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        await self.db.flush()
        return result.rowcount
