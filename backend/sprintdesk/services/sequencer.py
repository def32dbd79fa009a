"""Ordering service for sibling collections (tasks, sprints, epics, folders, documents).

``order`` is a rank, not a slot index: gaps left by deletions are
tolerated and nothing compacts them.

Known race: ``append`` reads ``max(order)`` and the caller inserts
afterwards, so two concurrent appends to the same scope can produce the
same rank. The next ``reorder`` restores a total order. This is accepted
and intentionally not serialized here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.exceptions import NotFoundError, ValidationError
from sprintdesk.models.document import Document, Folder
from sprintdesk.models.project import Epic, Project, Sprint, Task

logger = structlog.get_logger()


class ScopeKind(str, Enum):
    SPRINT_TASKS = "sprint_tasks"
    BACKLOG_TASKS = "backlog_tasks"
    SPRINTS = "sprints"
    EPICS = "epics"
    FOLDERS = "folders"
    DOCUMENTS = "documents"


@dataclass(frozen=True)
class OrderScope:
    """A sibling set sharing one ordering, identified by its parent."""

    kind: ScopeKind
    parent_id: UUID

    @classmethod
    def sprint(cls, sprint_id: UUID) -> "OrderScope":
        return cls(ScopeKind.SPRINT_TASKS, sprint_id)

    @classmethod
    def backlog(cls, project_id: UUID) -> "OrderScope":
        return cls(ScopeKind.BACKLOG_TASKS, project_id)

    @classmethod
    def for_task(cls, project_id: UUID, sprint_id: UUID | None) -> "OrderScope":
        if sprint_id is not None:
            return cls.sprint(sprint_id)
        return cls.backlog(project_id)

    @classmethod
    def sprints(cls, project_id: UUID) -> "OrderScope":
        return cls(ScopeKind.SPRINTS, project_id)

    @classmethod
    def epics(cls, project_id: UUID) -> "OrderScope":
        return cls(ScopeKind.EPICS, project_id)

    @classmethod
    def folders(cls, project_id: UUID) -> "OrderScope":
        return cls(ScopeKind.FOLDERS, project_id)

    @classmethod
    def documents(cls, folder_id: UUID) -> "OrderScope":
        return cls(ScopeKind.DOCUMENTS, folder_id)


# kind -> (ordered model, parent model, parent label)
_SCOPE_TARGETS: dict[ScopeKind, tuple[Any, Any, str]] = {
    ScopeKind.SPRINT_TASKS: (Task, Sprint, "Sprint"),
    ScopeKind.BACKLOG_TASKS: (Task, Project, "Project"),
    ScopeKind.SPRINTS: (Sprint, Project, "Project"),
    ScopeKind.EPICS: (Epic, Project, "Project"),
    ScopeKind.FOLDERS: (Folder, Project, "Project"),
    ScopeKind.DOCUMENTS: (Document, Folder, "Folder"),
}


def _scope_filter(scope: OrderScope) -> list:
    if scope.kind == ScopeKind.SPRINT_TASKS:
        return [Task.sprint_id == scope.parent_id]
    if scope.kind == ScopeKind.BACKLOG_TASKS:
        return [Task.project_id == scope.parent_id, Task.sprint_id.is_(None)]
    if scope.kind == ScopeKind.SPRINTS:
        return [Sprint.project_id == scope.parent_id]
    if scope.kind == ScopeKind.EPICS:
        return [Epic.project_id == scope.parent_id]
    if scope.kind == ScopeKind.FOLDERS:
        return [Folder.project_id == scope.parent_id]
    if scope.kind == ScopeKind.DOCUMENTS:
        return [Document.folder_id == scope.parent_id]
    raise TypeError(f"Unhandled order scope: {scope.kind!r}")


class SequencerService:
    """Maintains the ``order`` rank inside each scope."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, scope: OrderScope) -> int:
        """Return the rank for a new last item: ``max + 1``, or 0 when empty."""
        model, _, _ = _SCOPE_TARGETS[scope.kind]
        await self._ensure_parent(scope)

        result = await self.db.execute(
            select(func.max(model.order)).where(*_scope_filter(scope))
        )
        current_max = result.scalar()
        return 0 if current_max is None else current_max + 1

    async def reorder(self, scope: OrderScope, ordered_ids: Sequence[UUID]) -> None:
        """Assign ``order = index`` to each id, in the given sequence.

        A partial permutation only touches the listed ids.
        """
        model, _, _ = _SCOPE_TARGETS[scope.kind]
        await self._ensure_parent(scope)

        ids = list(ordered_ids)
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate ids in reorder request")

        if ids:
            result = await self.db.execute(
                select(model.id).where(model.id.in_(ids), *_scope_filter(scope))
            )
            found = set(result.scalars().all())
            missing = [str(i) for i in ids if i not in found]
            if missing:
                raise ValidationError(
                    f"Items not in scope {scope.kind.value}: {', '.join(missing)}"
                )

        for index, item_id in enumerate(ids):
            await self.db.execute(
                update(model)
                .where(model.id == item_id)
                .values(order=index)
            )
        await self.db.flush()

        logger.info(
            "scope_reordered",
            scope=scope.kind.value,
            parent_id=str(scope.parent_id),
            count=len(ids),
        )

    async def move_task(
        self,
        task_id: UUID,
        target_sprint_id: UUID | None,
        new_order: int,
    ) -> Task:
        """Move a task to ``new_order`` in a sprint (or the backlog when None).

        Siblings after the old position shift down and siblings at or after
        the new position shift up, so both scopes stay dense.
        """
        if new_order < 0:
            raise ValidationError("new_order must be non-negative")

        task = await self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)

        source = OrderScope.for_task(task.project_id, task.sprint_id)
        target = OrderScope.for_task(task.project_id, target_sprint_id)
        if target_sprint_id is not None:
            sprint = await self.db.get(Sprint, target_sprint_id)
            if sprint is None:
                raise NotFoundError("Sprint", target_sprint_id)
            if sprint.project_id != task.project_id:
                raise ValidationError("Sprint belongs to a different project")
        old_order = task.order

        if source == target:
            if new_order > old_order:
                await self._shift(
                    source, -1, Task.order > old_order, Task.order <= new_order
                )
            elif new_order < old_order:
                await self._shift(
                    source, 1, Task.order >= new_order, Task.order < old_order
                )
        else:
            await self._shift(source, -1, Task.order > old_order)
            await self._shift(target, 1, Task.order >= new_order)

        task.sprint_id = target_sprint_id
        task.order = new_order
        await self.db.flush()

        logger.info(
            "task_moved",
            task_id=str(task_id),
            from_scope=source.kind.value,
            to_scope=target.kind.value,
            old_order=old_order,
            new_order=new_order,
        )
        return task

    async def _shift(self, scope: OrderScope, delta: int, *conditions) -> None:
        await self.db.execute(
            update(Task)
            .where(*_scope_filter(scope), *conditions)
            .values(order=Task.order + delta)
        )

    async def _ensure_parent(self, scope: OrderScope) -> None:
        _, parent_model, label = _SCOPE_TARGETS[scope.kind]
        parent = await self.db.get(parent_model, scope.parent_id)
        if parent is None:
            raise NotFoundError(label, scope.parent_id)
