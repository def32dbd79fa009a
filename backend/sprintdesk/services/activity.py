"""Field-level task diffing and the append-only activity log.

Tracked fields, in the order their activities are written:
description, status, priority, assignee, sprint. Other fields (title,
team, order, epic) are applied by callers but never logged.
"""

from dataclasses import dataclass
from typing import Any, Sequence, Union
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.exceptions import ValidationError
from sprintdesk.models.activity import Activity, ActivityType
from sprintdesk.models.project import Sprint, Task
from sprintdesk.models.user import User

logger = structlog.get_logger()

BACKLOG_LABEL = "Backlog"


# =========================================================================
# Change variants
# =========================================================================

@dataclass(frozen=True)
class Created:
    """Task creation. The split fields are set only on tasks made by a split."""

    split_from: str | None = None
    split_number: int | None = None
    from_sprint: str | None = None


@dataclass(frozen=True)
class DescriptionUpdated:
    pass


@dataclass(frozen=True)
class StatusChanged:
    from_status: str
    to_status: str


@dataclass(frozen=True)
class PriorityChanged:
    from_priority: str
    to_priority: str


@dataclass(frozen=True)
class Assigned:
    from_name: str | None
    to_name: str | None
    assignee_id: UUID | None


@dataclass(frozen=True)
class MovedToSprint:
    from_sprint: str
    to_sprint: str


@dataclass(frozen=True)
class CommentAdded:
    comment_id: UUID


@dataclass(frozen=True)
class Split:
    new_task_id: UUID
    new_task_title: str
    split_number: int
    target_sprint: str
    comments_copied: int
    description_copied: bool


TaskChange = Union[
    Created,
    DescriptionUpdated,
    StatusChanged,
    PriorityChanged,
    Assigned,
    MovedToSprint,
    CommentAdded,
    Split,
]


def serialize_change(change: TaskChange) -> tuple[ActivityType, dict | None]:
    """Map a change to its activity type and stored metadata."""
    if isinstance(change, Created):
        if change.split_from is None:
            return ActivityType.CREATED, None
        return ActivityType.CREATED, {
            "splitFrom": change.split_from,
            "splitNumber": change.split_number,
            "fromSprint": change.from_sprint,
        }
    if isinstance(change, DescriptionUpdated):
        return ActivityType.DESCRIPTION_UPDATED, None
    if isinstance(change, StatusChanged):
        return ActivityType.STATUS_CHANGED, {
            "from": change.from_status,
            "to": change.to_status,
        }
    if isinstance(change, PriorityChanged):
        return ActivityType.PRIORITY_CHANGED, {
            "from": change.from_priority,
            "to": change.to_priority,
        }
    if isinstance(change, Assigned):
        return ActivityType.ASSIGNED, {"from": change.from_name, "to": change.to_name}
    if isinstance(change, MovedToSprint):
        return ActivityType.MOVED_TO_SPRINT, {
            "from": change.from_sprint,
            "to": change.to_sprint,
        }
    if isinstance(change, CommentAdded):
        return ActivityType.COMMENT_ADDED, {"commentId": str(change.comment_id)}
    if isinstance(change, Split):
        return ActivityType.SPLIT, {
            "newTaskId": str(change.new_task_id),
            "newTaskTitle": change.new_task_title,
            "splitNumber": change.split_number,
            "targetSprint": change.target_sprint,
            "commentsCopied": change.comments_copied,
            "descriptionCopied": change.description_copied,
        }
    raise TypeError(f"Unhandled task change: {change!r}")


# =========================================================================
# Snapshot & diff
# =========================================================================

@dataclass(frozen=True)
class TaskSnapshot:
    """Tracked state of a task before a mutation, with display labels."""

    description: str | None
    status: str
    priority: str
    assignee_id: UUID | None
    assignee_name: str | None
    sprint_id: UUID | None
    sprint_name: str | None


class ActivityRecorder:
    """Diffs task updates and writes one Activity row per tracked change."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def snapshot(self, task: Task) -> TaskSnapshot:
        assignee = await self._get_user(task.assignee_id) if task.assignee_id else None
        sprint = await self._get_sprint(task.sprint_id) if task.sprint_id else None
        return TaskSnapshot(
            description=task.description,
            status=task.status,
            priority=task.priority,
            assignee_id=task.assignee_id,
            assignee_name=assignee.display_name if assignee else None,
            sprint_id=task.sprint_id,
            sprint_name=sprint.name if sprint else None,
        )

    async def diff(
        self,
        before: TaskSnapshot,
        update_data: dict[str, Any],
        project_id: UUID | None = None,
    ) -> list[TaskChange]:
        """Return the tracked changes ``update_data`` would make to ``before``.

        Keys absent from ``update_data`` are untouched; keys present with the
        current value produce nothing. Raises ValidationError when the new
        assignee or sprint does not exist.
        """
        changes: list[TaskChange] = []

        if "description" in update_data and update_data["description"] != before.description:
            changes.append(DescriptionUpdated())

        if "status" in update_data and update_data["status"] != before.status:
            changes.append(StatusChanged(before.status, update_data["status"]))

        if "priority" in update_data and update_data["priority"] != before.priority:
            changes.append(PriorityChanged(before.priority, update_data["priority"]))

        if "assignee_id" in update_data and update_data["assignee_id"] != before.assignee_id:
            new_id = update_data["assignee_id"]
            new_name = None
            if new_id is not None:
                assignee = await self._get_user(new_id)
                if assignee is None:
                    raise ValidationError("Assignee does not exist")
                new_name = assignee.display_name
            changes.append(Assigned(before.assignee_name, new_name, new_id))

        if "sprint_id" in update_data and update_data["sprint_id"] != before.sprint_id:
            new_id = update_data["sprint_id"]
            new_label = BACKLOG_LABEL
            if new_id is not None:
                sprint = await self._get_sprint(new_id)
                if sprint is None:
                    raise ValidationError("Sprint does not exist")
                if project_id is not None and sprint.project_id != project_id:
                    raise ValidationError("Sprint belongs to a different project")
                new_label = sprint.name
            changes.append(MovedToSprint(before.sprint_name or BACKLOG_LABEL, new_label))

        return changes

    async def record(
        self,
        task_id: UUID,
        user_id: UUID,
        changes: Sequence[TaskChange],
    ) -> list[Activity]:
        """Append one Activity per change, preserving order."""
        activities = []
        for change in changes:
            activity_type, metadata = serialize_change(change)
            activity = Activity(
                task_id=task_id,
                user_id=user_id,
                activity_type=activity_type.value,
                extra_data=metadata,
            )
            self.db.add(activity)
            activities.append(activity)

        if activities:
            await self.db.flush()
            logger.info(
                "task_activities_recorded",
                task_id=str(task_id),
                types=[a.activity_type for a in activities],
            )
        return activities

    async def list_for_task(self, task_id: UUID) -> Sequence[Activity]:
        """Activities for a task, newest first."""
        result = await self.db.execute(
            select(Activity)
            .where(Activity.task_id == task_id)
            .order_by(Activity.created_at.desc())
        )
        return result.scalars().all()

    async def _get_user(self, user_id: UUID) -> User | None:
        return await self.db.get(User, user_id)

    async def _get_sprint(self, sprint_id: UUID) -> Sprint | None:
        return await self.db.get(Sprint, sprint_id)
