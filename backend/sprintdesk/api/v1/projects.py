"""Projects API endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.api.v1.auth import AdminUser, CurrentUser
from sprintdesk.db.session import get_db_session
from sprintdesk.models.project import Project, Sprint, SprintStatus, project_members
from sprintdesk.services.sequencer import OrderScope, SequencerService
from sprintdesk.services.task_mutation import TaskMutationService

router = APIRouter()
logger = structlog.get_logger()


class ProjectCreate(BaseModel):
    """Create a new project."""

    name: str = Field(..., min_length=1, max_length=255)
    key: str = Field(..., min_length=2, max_length=5)


class ProjectResponse(BaseModel):
    """Project response."""

    id: UUID
    name: str
    key: str
    task_counter: int
    created_by_id: UUID
    created_at: datetime

    class Config:
        from_attributes = True


class SprintCreate(BaseModel):
    """Create a sprint in a project."""

    name: str = Field(..., min_length=1, max_length=255)
    start_date: datetime | None = None
    end_date: datetime | None = None


class SprintResponse(BaseModel):
    """Sprint response."""

    id: UUID
    project_id: UUID
    name: str
    status: str
    start_date: datetime | None
    end_date: datetime | None
    order: int

    class Config:
        from_attributes = True


@router.post("/", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> Project:
    """Create a project (admins only). The key prefixes every task key."""
    service = TaskMutationService(db)
    return await service.create_project(current_user, project_data.name, project_data.key)


@router.get("/", response_model=list[ProjectResponse])
async def list_projects(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[Project]:
    """List projects visible to the current user."""
    query = select(Project).order_by(Project.created_at)
    if not current_user.is_admin:
        member_of = select(project_members.c.project_id).where(
            project_members.c.user_id == current_user.id
        )
        query = query.where(Project.id.in_(member_of))
    result = await db.execute(query)
    return list(result.scalars().all())


@router.post(
    "/{project_id}/sprints",
    response_model=SprintResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_sprint(
    project_id: UUID,
    sprint_data: SprintCreate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> Sprint:
    """Create a sprint after the project's existing ones."""
    order = await SequencerService(db).append(OrderScope.sprints(project_id))

    sprint = Sprint(
        project_id=project_id,
        name=sprint_data.name,
        status=SprintStatus.PLANNED.value,
        start_date=sprint_data.start_date,
        end_date=sprint_data.end_date,
        order=order,
    )
    db.add(sprint)
    await db.commit()

    logger.info("sprint_created", sprint_id=str(sprint.id), project_id=str(project_id))
    return sprint
