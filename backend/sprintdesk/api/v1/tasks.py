"""Tasks API endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.api.deps import EmailSinkDep
from sprintdesk.api.v1.auth import CurrentUser
from sprintdesk.db.session import get_db_session
from sprintdesk.models.activity import Activity
from sprintdesk.models.project import Comment, Task
from sprintdesk.services.task_mutation import TaskMutationService

router = APIRouter()
logger = structlog.get_logger()


# Request/Response Models
class TaskCreate(BaseModel):
    """Create a new task."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    project_id: UUID
    sprint_id: UUID | None = None
    epic_id: UUID | None = None
    status: str = Field(default="TODO", pattern="^(TODO|IN_PROGRESS|READY_TO_TEST|BLOCKED|DONE|LIVE)$")
    priority: str = Field(default="MEDIUM", pattern="^(LOW|MEDIUM|HIGH|URGENT)$")
    team: str | None = Field(None, max_length=50)
    assignee_id: UUID | None = None


class TaskUpdate(BaseModel):
    """Partial task update; only fields sent are applied."""

    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    status: str | None = Field(None, pattern="^(TODO|IN_PROGRESS|READY_TO_TEST|BLOCKED|DONE|LIVE)$")
    priority: str | None = Field(None, pattern="^(LOW|MEDIUM|HIGH|URGENT)$")
    team: str | None = Field(None, max_length=50)
    assignee_id: UUID | None = None
    sprint_id: UUID | None = None
    epic_id: UUID | None = None
    order: int | None = Field(None, ge=0)


class TaskReorder(BaseModel):
    """Reorder tasks within a sprint, or the project backlog when sprint_id is null."""

    project_id: UUID
    sprint_id: UUID | None = None
    task_ids: list[UUID]


class TaskMove(BaseModel):
    """Move a task to a position in a sprint (or the backlog)."""

    sprint_id: UUID | None = None
    order: int = Field(..., ge=0)


class TaskSplit(BaseModel):
    """Split a task into a follow-up.

    Leaving out ``sprint_id`` keeps the source task's sprint; an explicit
    null sends the new task to the backlog.
    """

    sprint_id: UUID | None = None
    copy_comments: bool = True
    copy_description: bool = True


class TaskCommentCreate(BaseModel):
    """Create a task comment."""

    content: str = Field(..., min_length=1, max_length=10000)
    mention_ids: list[UUID] = Field(default_factory=list)


class TaskResponse(BaseModel):
    """Task response."""

    id: UUID
    title: str
    description: str | None
    status: str
    priority: str
    team: str | None
    task_key: str | None
    task_number: int | None
    project_id: UUID
    sprint_id: UUID | None
    epic_id: UUID | None
    assignee_id: UUID | None
    assigned_at: datetime | None
    created_by_id: UUID
    order: int
    split_from_id: UUID | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ActivityResponse(BaseModel):
    """Activity log entry."""

    id: UUID
    task_id: UUID
    user_id: UUID
    activity_type: str
    extra_data: dict[str, Any] | None
    created_at: datetime

    class Config:
        from_attributes = True


class TaskCommentResponse(BaseModel):
    """Task comment response."""

    id: UUID
    task_id: UUID
    author_id: UUID
    content: str
    task_status_at_creation: str | None
    created_at: datetime

    class Config:
        from_attributes = True


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    current_user: CurrentUser,
    email_sink: EmailSinkDep,
    db: AsyncSession = Depends(get_db_session),
) -> Task:
    """Create a task at the end of its sprint or backlog."""
    service = TaskMutationService(db, email_sink=email_sink)
    return await service.create_task(current_user, task_data.model_dump())


@router.get("/", response_model=list[TaskResponse])
async def list_tasks(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    project_id: UUID = Query(...),
    sprint_id: UUID | None = Query(None),
) -> list[Task]:
    """List one sprint's tasks, or the backlog when no sprint is given, in rank order."""
    service = TaskMutationService(db)
    await service.ensure_project_access(current_user, project_id)
    return list(await service.list_tasks(project_id, sprint_id))


@router.post("/reorder", status_code=status.HTTP_204_NO_CONTENT)
async def reorder_tasks(
    reorder: TaskReorder,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Assign ranks 0..n-1 to the given tasks in request order."""
    await TaskMutationService(db).reorder_tasks(
        current_user, reorder.project_id, reorder.sprint_id, reorder.task_ids
    )


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Task:
    """Get a task by ID."""
    service = TaskMutationService(db)
    task = await service.get_task(task_id)
    await service.ensure_project_access(current_user, task.project_id)
    return task


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    updates: TaskUpdate,
    current_user: CurrentUser,
    email_sink: EmailSinkDep,
    db: AsyncSession = Depends(get_db_session),
) -> Task:
    """Update a task; tracked field changes are written to its activity log."""
    service = TaskMutationService(db, email_sink=email_sink)
    task, _ = await service.update_task(
        current_user, task_id, updates.model_dump(exclude_unset=True)
    )
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Delete a task (admins and the task creator only)."""
    await TaskMutationService(db).delete_task(current_user, task_id)


@router.post("/{task_id}/move", response_model=TaskResponse)
async def move_task(
    task_id: UUID,
    move: TaskMove,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Task:
    """Move a task to a different sprint and/or position."""
    service = TaskMutationService(db)
    return await service.move_task(current_user, task_id, move.sprint_id, move.order)


@router.get("/{task_id}/activities", response_model=list[ActivityResponse])
async def list_task_activities(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[Activity]:
    """Activity log for a task, newest first."""
    service = TaskMutationService(db)
    task = await service.get_task(task_id)
    await service.ensure_project_access(current_user, task.project_id)
    return list(await service.list_activities(task_id))


@router.post(
    "/{task_id}/comments",
    response_model=TaskCommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_task_comment(
    task_id: UUID,
    comment_data: TaskCommentCreate,
    current_user: CurrentUser,
    email_sink: EmailSinkDep,
    db: AsyncSession = Depends(get_db_session),
) -> Comment:
    """Add a comment; @mentions notify project members."""
    service = TaskMutationService(db, email_sink=email_sink)
    return await service.add_comment(
        current_user,
        task_id,
        comment_data.content,
        mention_ids=comment_data.mention_ids,
    )


@router.post(
    "/{task_id}/split",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
)
async def split_task(
    task_id: UUID,
    split: TaskSplit,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Task:
    """Continue a task as a new, numbered task in the same split chain."""
    service = TaskMutationService(db)
    if "sprint_id" in split.model_fields_set:
        target_sprint_id = split.sprint_id
    else:
        target_sprint_id = (await service.get_task(task_id)).sprint_id
    return await service.split_task(
        current_user,
        task_id,
        target_sprint_id,
        copy_comments=split.copy_comments,
        copy_description=split.copy_description,
    )
