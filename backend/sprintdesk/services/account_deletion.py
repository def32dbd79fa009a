"""Account deletion saga.

Removes a user in one transaction. Preconditions (target exists, is not
the actor, an heir admin exists) are checked before any write; the steps
then run in a fixed order and commit once. Any failure rolls everything
back.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import UUID

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.exceptions import (
    InternalError,
    NoHeirAdminError,
    NotFoundError,
    SprintdeskError,
    ValidationError,
)
from sprintdesk.models.activity import Activity, Notification
from sprintdesk.models.document import Document, DocumentComment, DocumentVersion
from sprintdesk.models.invite import Invite, invite_projects
from sprintdesk.models.project import (
    Attachment,
    Comment,
    Epic,
    Project,
    Task,
    project_members,
)
from sprintdesk.models.user import User, UserRole

logger = structlog.get_logger()


@dataclass
class DeletionPlan:
    """Resolved preconditions for one deletion."""

    user: User
    heir: User


@dataclass
class DeletionReport:
    user_id: UUID
    heir_id: UUID
    affected: dict[str, int] = field(default_factory=dict)


SagaStep = Callable[[DeletionPlan], Awaitable[int]]


class AccountDeletionService:
    """Deletes a user, transferring what they own to an heir admin."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def plan(self, user_id: UUID, acting_user_id: UUID | None = None) -> DeletionPlan:
        """Check every precondition without writing anything."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        if acting_user_id is not None and user_id == acting_user_id:
            raise ValidationError("You cannot delete your own account", code="CANNOT_DELETE_SELF")

        result = await self.db.execute(
            select(User)
            .where(User.role == UserRole.ADMIN.value, User.id != user_id)
            .order_by(User.created_at, User.id)
            .limit(1)
        )
        heir = result.scalar_one_or_none()
        if heir is None:
            raise NoHeirAdminError()

        return DeletionPlan(user=user, heir=heir)

    def steps(self) -> list[tuple[str, SagaStep]]:
        """Saga steps, in execution order."""
        return [
            ("activities", self._delete_activities),
            ("comments", self._delete_comments),
            ("attachments", self._delete_attachments),
            ("notifications", self._delete_notifications),
            ("invites", self._delete_sent_invites),
            ("document_comments", self._delete_document_comments),
            ("document_versions", self._delete_document_versions),
            ("unassigned_tasks", self._unassign_tasks),
            ("transferred_tasks", self._transfer_tasks),
            ("transferred_projects", self._transfer_projects),
            ("transferred_documents", self._transfer_documents),
            ("transferred_epics", self._transfer_epics),
            ("memberships", self._remove_memberships),
            ("user", self._delete_user),
        ]

    async def delete_user(
        self,
        user_id: UUID,
        acting_user_id: UUID | None = None,
    ) -> DeletionReport:
        plan = await self.plan(user_id, acting_user_id)
        report = DeletionReport(user_id=plan.user.id, heir_id=plan.heir.id)

        try:
            for name, step in self.steps():
                report.affected[name] = await step(plan)
            await self.db.commit()
        except SprintdeskError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "user_deletion_failed",
                user_id=str(user_id),
                error=str(e),
            )
            raise InternalError("Failed to delete user") from e

        logger.info(
            "user_deleted",
            user_id=str(user_id),
            heir_id=str(plan.heir.id),
            acting_user_id=str(acting_user_id) if acting_user_id else None,
            **report.affected,
        )
        return report

    # =========================================================================
    # Content with no transferable value
    # =========================================================================

    async def _delete_activities(self, plan: DeletionPlan) -> int:
        return await self._bulk_delete(delete(Activity).where(Activity.user_id == plan.user.id))

    async def _delete_comments(self, plan: DeletionPlan) -> int:
        comment_ids = select(Comment.id).where(Comment.author_id == plan.user.id)
        # Notifications pointing at these comments go with them
        await self._bulk_delete(
            delete(Notification).where(Notification.comment_id.in_(comment_ids))
        )
        return await self._bulk_delete(delete(Comment).where(Comment.author_id == plan.user.id))

    async def _delete_attachments(self, plan: DeletionPlan) -> int:
        return await self._bulk_delete(
            delete(Attachment).where(Attachment.uploaded_by_id == plan.user.id)
        )

    async def _delete_notifications(self, plan: DeletionPlan) -> int:
        await self.db.execute(
            update(Notification)
            .where(Notification.sender_id == plan.user.id)
            .values(sender_id=None)
            .execution_options(synchronize_session=False)
        )
        return await self._bulk_delete(
            delete(Notification).where(Notification.user_id == plan.user.id)
        )

    async def _delete_sent_invites(self, plan: DeletionPlan) -> int:
        invite_ids = select(Invite.id).where(Invite.invited_by_id == plan.user.id)
        await self.db.execute(
            delete(invite_projects).where(invite_projects.c.invite_id.in_(invite_ids))
        )
        return await self._bulk_delete(delete(Invite).where(Invite.invited_by_id == plan.user.id))

    async def _delete_document_comments(self, plan: DeletionPlan) -> int:
        return await self._bulk_delete(
            delete(DocumentComment).where(DocumentComment.author_id == plan.user.id)
        )

    async def _delete_document_versions(self, plan: DeletionPlan) -> int:
        return await self._bulk_delete(
            delete(DocumentVersion).where(DocumentVersion.created_by_id == plan.user.id)
        )

    # =========================================================================
    # Assignment and ownership
    # =========================================================================

    async def _unassign_tasks(self, plan: DeletionPlan) -> int:
        return await self._bulk_update(
            update(Task)
            .where(Task.assignee_id == plan.user.id)
            .values(assignee_id=None, assigned_at=None)
        )

    async def _transfer_tasks(self, plan: DeletionPlan) -> int:
        return await self._bulk_update(
            update(Task)
            .where(Task.created_by_id == plan.user.id)
            .values(created_by_id=plan.heir.id)
        )

    async def _transfer_projects(self, plan: DeletionPlan) -> int:
        return await self._bulk_update(
            update(Project)
            .where(Project.created_by_id == plan.user.id)
            .values(created_by_id=plan.heir.id)
        )

    async def _transfer_documents(self, plan: DeletionPlan) -> int:
        return await self._bulk_update(
            update(Document)
            .where(Document.created_by_id == plan.user.id)
            .values(created_by_id=plan.heir.id)
        )

    async def _transfer_epics(self, plan: DeletionPlan) -> int:
        return await self._bulk_update(
            update(Epic)
            .where(Epic.created_by_id == plan.user.id)
            .values(created_by_id=plan.heir.id)
        )

    async def _remove_memberships(self, plan: DeletionPlan) -> int:
        result = await self.db.execute(
            delete(project_members).where(project_members.c.user_id == plan.user.id)
        )
        return result.rowcount

    async def _delete_user(self, plan: DeletionPlan) -> int:
        # Drop stale collection state that still references the user
        self.db.expire_all()
        return await self._bulk_delete(delete(User).where(User.id == plan.user.id))

    async def _bulk_delete(self, statement) -> int:
        result = await self.db.execute(
            statement.execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def _bulk_update(self, statement) -> int:
        result = await self.db.execute(
            statement.execution_options(synchronize_session=False)
        )
        return result.rowcount
