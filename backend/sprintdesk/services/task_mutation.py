"""Task, epic, project and document mutations.

Each write follows the same path: load, diff, apply together with any
ordering adjustment, log activities, commit, then hand staged emails to
the dispatcher's sink.
"""

import re
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.config import Settings, get_settings
from sprintdesk.exceptions import ForbiddenError, NotFoundError, ValidationError
from sprintdesk.models.document import Document, Folder
from sprintdesk.models.project import (
    Comment,
    Epic,
    Project,
    Sprint,
    Task,
    TaskPriority,
    TaskStatus,
    project_members,
)
from sprintdesk.models.user import User
from sprintdesk.services.activity import (
    ActivityRecorder,
    Assigned,
    BACKLOG_LABEL,
    CommentAdded,
    Created,
    Split,
    TaskChange,
)
from sprintdesk.services.notification import EmailSink, NotificationDispatcher
from sprintdesk.services.sequencer import OrderScope, SequencerService
from sprintdesk.services.task_keys import TaskKeyIssuer, validate_project_key

logger = structlog.get_logger()

STATUS_CODES = {s.value for s in TaskStatus}
PRIORITY_CODES = {p.value for p in TaskPriority}

# Fields a PATCH may set directly on the task row
UPDATABLE_FIELDS = (
    "title",
    "description",
    "status",
    "priority",
    "team",
    "assignee_id",
    "sprint_id",
    "epic_id",
    "order",
)


def _check_codes(data: dict[str, Any]) -> None:
    if "status" in data and data["status"] not in STATUS_CODES:
        raise ValidationError(f"Unknown status: {data['status']}")
    if "priority" in data and data["priority"] not in PRIORITY_CODES:
        raise ValidationError(f"Unknown priority: {data['priority']}")


# " #N" suffix that numbers tasks in a split chain
SPLIT_SUFFIX = re.compile(r"\s+#\d+$")


def base_title(title: str) -> str:
    """Title without its split-chain number."""
    return SPLIT_SUFFIX.sub("", title).strip()


class TaskMutationService:
    """Applies mutations and keeps order, keys, activities and notifications consistent."""

    def __init__(
        self,
        db: AsyncSession,
        email_sink: EmailSink | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.sequencer = SequencerService(db)
        self.keys = TaskKeyIssuer(db)
        self.activities = ActivityRecorder(db)
        self.dispatcher = NotificationDispatcher(db, email_sink=email_sink, settings=self.settings)

    async def get_task(self, task_id: UUID) -> Task:
        task = await self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def ensure_project_access(self, actor: User, project_id: UUID) -> None:
        """Admins see every project; members only their own."""
        if actor.is_admin:
            return
        result = await self.db.execute(
            select(project_members.c.user_id).where(
                project_members.c.project_id == project_id,
                project_members.c.user_id == actor.id,
            )
        )
        if result.first() is None:
            raise ForbiddenError("You do not have access to this project")

    async def _check_sprint(self, project_id: UUID, sprint_id: UUID) -> Sprint:
        sprint = await self.db.get(Sprint, sprint_id)
        if sprint is None:
            raise ValidationError("Sprint does not exist")
        if sprint.project_id != project_id:
            raise ValidationError("Sprint belongs to a different project")
        return sprint

    async def _check_epic(self, project_id: UUID, epic_id: UUID) -> None:
        epic = await self.db.get(Epic, epic_id)
        if epic is None:
            raise ValidationError("Epic does not exist")
        if epic.project_id != project_id:
            raise ValidationError("Epic belongs to a different project")

    async def _commit_and_dispatch(self) -> None:
        try:
            await self.db.commit()
        except Exception:
            self.dispatcher.discard_pending()
            raise
        self.dispatcher.dispatch_pending()

    # =========================================================================
    # Tasks
    # =========================================================================

    async def create_task(self, actor: User, data: dict[str, Any]) -> Task:
        """Create a task at the end of its sprint (or backlog) with a fresh key."""
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("Title is required")
        _check_codes(data)

        project_id = data.get("project_id")
        if project_id is None:
            raise ValidationError("Project is required")
        if await self.db.get(Project, project_id) is None:
            raise NotFoundError("Project", project_id)
        await self.ensure_project_access(actor, project_id)

        sprint_id = data.get("sprint_id")
        if sprint_id is not None:
            await self._check_sprint(project_id, sprint_id)
        if data.get("epic_id") is not None:
            await self._check_epic(project_id, data["epic_id"])

        assignee = None
        if data.get("assignee_id") is not None:
            assignee = await self.db.get(User, data["assignee_id"])
            if assignee is None:
                raise ValidationError("Assignee does not exist")

        order = await self.sequencer.append(OrderScope.for_task(project_id, sprint_id))
        issued = await self.keys.issue_task_key(project_id)

        task = Task(
            title=title,
            description=data.get("description"),
            status=data.get("status") or TaskStatus.TODO.value,
            priority=data.get("priority") or TaskPriority.MEDIUM.value,
            team=data.get("team"),
            project_id=project_id,
            sprint_id=sprint_id,
            epic_id=data.get("epic_id"),
            assignee_id=assignee.id if assignee else None,
            assigned_at=datetime.now(timezone.utc) if assignee else None,
            created_by_id=actor.id,
            order=order,
            task_key=issued.key,
            task_number=issued.number,
        )
        self.db.add(task)
        await self.db.flush()

        await self.activities.record(task.id, actor.id, [Created()])
        if assignee is not None:
            await self.dispatcher.notify_assignment(
                task, Assigned(None, assignee.display_name, assignee.id), actor
            )

        await self._commit_and_dispatch()

        logger.info(
            "task_created",
            task_id=str(task.id),
            task_key=task.task_key,
            project_id=str(project_id),
        )
        return task

    async def update_task(
        self,
        actor: User,
        task_id: UUID,
        update_data: dict[str, Any],
    ) -> tuple[Task, list[TaskChange]]:
        """Apply a partial update and log one activity per tracked change.

        Returns the task and the changes that were recorded.
        """
        task = await self.get_task(task_id)
        await self.ensure_project_access(actor, task.project_id)

        data = {k: v for k, v in update_data.items() if k in UPDATABLE_FIELDS}
        _check_codes(data)
        if "title" in data and not (data["title"] or "").strip():
            raise ValidationError("Title cannot be empty")
        if data.get("epic_id") is not None and data["epic_id"] != task.epic_id:
            await self._check_epic(task.project_id, data["epic_id"])

        before = await self.activities.snapshot(task)
        changes = await self.activities.diff(before, data, project_id=task.project_id)

        # Leaving a scope without an explicit rank appends to the new one
        if "sprint_id" in data and data["sprint_id"] != task.sprint_id and "order" not in data:
            data["order"] = await self.sequencer.append(
                OrderScope.for_task(task.project_id, data["sprint_id"])
            )

        if "assignee_id" in data and data["assignee_id"] != task.assignee_id:
            data["assigned_at"] = (
                datetime.now(timezone.utc) if data["assignee_id"] is not None else None
            )

        for field, value in data.items():
            setattr(task, field, value)
        await self.db.flush()

        await self.activities.record(task.id, actor.id, changes)
        for change in changes:
            if isinstance(change, Assigned):
                await self.dispatcher.notify_assignment(task, change, actor)

        await self._commit_and_dispatch()

        logger.info(
            "task_updated",
            task_id=str(task_id),
            fields=sorted(data),
            change_count=len(changes),
        )
        return task, changes

    async def delete_task(self, actor: User, task_id: UUID) -> None:
        """Only admins and the task's creator may delete it."""
        task = await self.get_task(task_id)
        if not actor.is_admin and task.created_by_id != actor.id:
            raise ForbiddenError("Only admins or the task creator can delete this task")

        await self.db.delete(task)
        await self.db.commit()

        logger.info("task_deleted", task_id=str(task_id), user_id=str(actor.id))

    async def move_task(
        self,
        actor: User,
        task_id: UUID,
        target_sprint_id: UUID | None,
        new_order: int,
    ) -> Task:
        """Drag-and-drop move; a sprint change is logged like a PATCH."""
        task = await self.get_task(task_id)
        await self.ensure_project_access(actor, task.project_id)
        before = await self.activities.snapshot(task)

        changes: list[TaskChange] = []
        if target_sprint_id != task.sprint_id:
            changes = await self.activities.diff(
                before, {"sprint_id": target_sprint_id}, project_id=task.project_id
            )

        task = await self.sequencer.move_task(task_id, target_sprint_id, new_order)
        await self.activities.record(task.id, actor.id, changes)
        await self.db.commit()
        return task

    async def reorder_tasks(
        self,
        actor: User,
        project_id: UUID,
        sprint_id: UUID | None,
        task_ids: list[UUID],
    ) -> None:
        """Rank a sprint's tasks (or the project backlog) in the given order."""
        await self.ensure_project_access(actor, project_id)
        if sprint_id is not None:
            await self._check_sprint(project_id, sprint_id)

        await self.sequencer.reorder(OrderScope.for_task(project_id, sprint_id), task_ids)
        await self.db.commit()

    # =========================================================================
    # Split
    # =========================================================================

    async def split_task(
        self,
        actor: User,
        task_id: UUID,
        target_sprint_id: UUID | None,
        copy_comments: bool = True,
        copy_description: bool = True,
    ) -> Task:
        """Continue a task as a new one, e.g. when it carries over a sprint.

        The new task is titled ``"<base title> #N"`` where N is its position
        in the split chain, gets a fresh key and goes to the end of the
        target sprint (or the backlog). Status restarts at TODO.
        """
        source = await self.get_task(task_id)
        await self.ensure_project_access(actor, source.project_id)

        target_label = BACKLOG_LABEL
        if target_sprint_id is not None:
            target_label = (await self._check_sprint(source.project_id, target_sprint_id)).name
        source_sprint = await self.db.get(Sprint, source.sprint_id) if source.sprint_id else None

        split_number = await self._next_split_number(source)
        title = f"{base_title(source.title)} #{split_number}"

        order = await self.sequencer.append(OrderScope.for_task(source.project_id, target_sprint_id))
        issued = await self.keys.issue_task_key(source.project_id)

        task = Task(
            title=title,
            description=source.description if copy_description else None,
            status=TaskStatus.TODO.value,
            priority=source.priority,
            team=source.team,
            project_id=source.project_id,
            sprint_id=target_sprint_id,
            epic_id=source.epic_id,
            assignee_id=source.assignee_id,
            assigned_at=datetime.now(timezone.utc) if source.assignee_id else None,
            created_by_id=actor.id,
            order=order,
            task_key=issued.key,
            task_number=issued.number,
            split_from_id=source.id,
        )
        self.db.add(task)
        await self.db.flush()

        copied = 0
        if copy_comments:
            result = await self.db.execute(
                select(Comment)
                .where(Comment.task_id == source.id)
                .order_by(Comment.created_at, Comment.id)
            )
            for comment in result.scalars().all():
                self.db.add(
                    Comment(
                        task_id=task.id,
                        author_id=comment.author_id,
                        content=comment.content,
                        task_status_at_creation=comment.task_status_at_creation,
                    )
                )
                copied += 1

        await self.activities.record(
            source.id,
            actor.id,
            [Split(task.id, task.title, split_number, target_label, copied, copy_description)],
        )
        await self.activities.record(
            task.id,
            actor.id,
            [
                Created(
                    split_from=source.title,
                    split_number=split_number,
                    from_sprint=source_sprint.name if source_sprint else BACKLOG_LABEL,
                )
            ],
        )
        await self.db.commit()

        logger.info(
            "task_split",
            task_id=str(source.id),
            new_task_id=str(task.id),
            task_key=task.task_key,
            split_number=split_number,
            comments_copied=copied,
        )
        return task

    async def _next_split_number(self, task: Task) -> int:
        """Size of the task's split chain (root and all descendants) plus one."""
        root_id = task.id
        parent_id = task.split_from_id
        seen = {root_id}
        while parent_id is not None and parent_id not in seen:
            seen.add(parent_id)
            root_id = parent_id
            parent = await self.db.get(Task, parent_id)
            parent_id = parent.split_from_id if parent else None

        chain_size = 1
        frontier = [root_id]
        while frontier:
            result = await self.db.execute(
                select(Task.id).where(Task.split_from_id.in_(frontier))
            )
            frontier = list(result.scalars().all())
            chain_size += len(frontier)
        return chain_size + 1

    async def list_activities(self, task_id: UUID):
        await self.get_task(task_id)
        return await self.activities.list_for_task(task_id)

    # =========================================================================
    # Comments
    # =========================================================================

    async def add_comment(
        self,
        actor: User,
        task_id: UUID,
        content: str,
        mention_ids: list[UUID] | None = None,
    ) -> Comment:
        """Store a comment, log it, notify mentions and email followers."""
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")

        task = await self.get_task(task_id)
        await self.ensure_project_access(actor, task.project_id)

        comment = Comment(
            task_id=task.id,
            author_id=actor.id,
            content=content,
            task_status_at_creation=task.status,
        )
        self.db.add(comment)
        await self.db.flush()

        await self.activities.record(task.id, actor.id, [CommentAdded(comment.id)])

        notifications = await self.dispatcher.notify_mentions(
            task, comment, actor, mention_ids=mention_ids
        )
        await self.dispatcher.queue_comment_emails(
            task, comment, actor, already_notified={n.user_id for n in notifications}
        )

        await self._commit_and_dispatch()

        logger.info(
            "comment_created",
            comment_id=str(comment.id),
            task_id=str(task.id),
            mention_count=len(notifications),
        )
        return comment

    # =========================================================================
    # Projects
    # =========================================================================

    async def create_project(self, actor: User, name: str, key: str) -> Project:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        key = validate_project_key((key or "").strip())
        await self.keys.ensure_key_available(key)

        project = Project(name=name, key=key, task_counter=0, created_by_id=actor.id)
        project.members.append(actor)
        self.db.add(project)
        await self.db.commit()

        logger.info("project_created", project_id=str(project.id), key=key)
        return project

    # =========================================================================
    # Epics
    # =========================================================================

    async def create_epic(
        self,
        actor: User,
        project_id: UUID,
        name: str,
        description: str | None = None,
        color: str | None = None,
    ) -> Epic:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")

        order = await self.sequencer.append(OrderScope.epics(project_id))
        epic = Epic(
            project_id=project_id,
            name=name,
            description=description,
            order=order,
            created_by_id=actor.id,
        )
        if color:
            epic.color = color
        self.db.add(epic)
        await self.db.commit()

        logger.info("epic_created", epic_id=str(epic.id), project_id=str(project_id))
        return epic

    async def delete_epic(self, epic_id: UUID) -> None:
        """Delete an epic; its tasks stay and lose the link."""
        epic = await self.db.get(Epic, epic_id)
        if epic is None:
            raise NotFoundError("Epic", epic_id)

        result = await self.db.execute(
            update(Task).where(Task.epic_id == epic_id).values(epic_id=None)
        )
        await self.db.delete(epic)
        await self.db.commit()

        logger.info("epic_deleted", epic_id=str(epic_id), unlinked_tasks=result.rowcount)

    # =========================================================================
    # Document space
    # =========================================================================

    async def create_folder(self, project_id: UUID, name: str) -> Folder:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")

        order = await self.sequencer.append(OrderScope.folders(project_id))
        folder = Folder(project_id=project_id, name=name, order=order)
        self.db.add(folder)
        await self.db.commit()
        return folder

    async def create_document(
        self,
        actor: User,
        folder_id: UUID,
        title: str,
        content: str | None = None,
    ) -> Document:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")

        order = await self.sequencer.append(OrderScope.documents(folder_id))
        document = Document(
            folder_id=folder_id,
            title=title,
            content=content,
            order=order,
            created_by_id=actor.id,
        )
        self.db.add(document)
        await self.db.commit()

        logger.info("document_created", document_id=str(document.id), folder_id=str(folder_id))
        return document

    async def list_tasks(self, project_id: UUID, sprint_id: UUID | None = None):
        """Tasks of one sprint (or the backlog when ``sprint_id`` is None) in rank order."""
        query = select(Task).where(Task.project_id == project_id)
        if sprint_id is not None:
            query = query.where(Task.sprint_id == sprint_id)
        else:
            query = query.where(Task.sprint_id.is_(None))
        result = await self.db.execute(query.order_by(Task.order, Task.created_at))
        return result.scalars().all()
