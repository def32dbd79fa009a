"""Epics API endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.api.v1.auth import CurrentUser
from sprintdesk.db.session import get_db_session
from sprintdesk.models.project import Epic
from sprintdesk.services.sequencer import OrderScope, SequencerService
from sprintdesk.services.task_mutation import TaskMutationService

router = APIRouter()


class EpicCreate(BaseModel):
    """Create an epic at the end of its project's list."""

    project_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    color: str | None = Field(None, max_length=20)


class EpicReorder(BaseModel):
    project_id: UUID
    epic_ids: list[UUID]


class EpicResponse(BaseModel):
    """Epic response."""

    id: UUID
    project_id: UUID
    name: str
    description: str | None
    color: str
    order: int
    created_by_id: UUID
    created_at: datetime

    class Config:
        from_attributes = True


@router.post("/", response_model=EpicResponse, status_code=status.HTTP_201_CREATED)
async def create_epic(
    epic_data: EpicCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Epic:
    service = TaskMutationService(db)
    await service.ensure_project_access(current_user, epic_data.project_id)
    return await service.create_epic(
        current_user,
        epic_data.project_id,
        epic_data.name,
        description=epic_data.description,
        color=epic_data.color,
    )


@router.post("/reorder", status_code=status.HTTP_204_NO_CONTENT)
async def reorder_epics(
    reorder: EpicReorder,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Assign ranks 0..n-1 to the given epics in request order."""
    await TaskMutationService(db).ensure_project_access(current_user, reorder.project_id)
    await SequencerService(db).reorder(OrderScope.epics(reorder.project_id), reorder.epic_ids)
    await db.commit()


@router.delete("/{epic_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_epic(
    epic_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Delete an epic. Its tasks are kept and unlinked."""
    service = TaskMutationService(db)
    epic = await db.get(Epic, epic_id)
    if epic is not None:
        await service.ensure_project_access(current_user, epic.project_id)
    await service.delete_epic(epic_id)
