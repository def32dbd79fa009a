"""Folder and document endpoints (ordering and creation)."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.api.v1.auth import CurrentUser
from sprintdesk.db.session import get_db_session
from sprintdesk.exceptions import NotFoundError
from sprintdesk.models.document import Document, Folder
from sprintdesk.services.sequencer import OrderScope, SequencerService
from sprintdesk.services.task_mutation import TaskMutationService

folders_router = APIRouter()
documents_router = APIRouter()


# ============================================================================
# Schemas
# ============================================================================

class FolderCreate(BaseModel):
    project_id: UUID
    name: str = Field(..., min_length=1, max_length=255)


class FolderReorder(BaseModel):
    project_id: UUID
    folder_ids: list[UUID]


class FolderResponse(BaseModel):
    id: UUID
    project_id: UUID
    name: str
    order: int
    created_at: datetime

    class Config:
        from_attributes = True


class DocumentCreate(BaseModel):
    folder_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    content: str | None = None


class DocumentReorder(BaseModel):
    folder_id: UUID
    document_ids: list[UUID]


class DocumentResponse(BaseModel):
    id: UUID
    folder_id: UUID
    title: str
    content: str | None
    order: int
    created_by_id: UUID
    created_at: datetime

    class Config:
        from_attributes = True


async def _folder_project(db: AsyncSession, folder_id: UUID) -> UUID:
    folder = await db.get(Folder, folder_id)
    if folder is None:
        raise NotFoundError("Folder", folder_id)
    return folder.project_id


# ============================================================================
# Folders
# ============================================================================

@folders_router.post("/", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(
    folder_data: FolderCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Folder:
    service = TaskMutationService(db)
    await service.ensure_project_access(current_user, folder_data.project_id)
    return await service.create_folder(folder_data.project_id, folder_data.name)


@folders_router.post("/reorder", status_code=status.HTTP_204_NO_CONTENT)
async def reorder_folders(
    reorder: FolderReorder,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    await TaskMutationService(db).ensure_project_access(current_user, reorder.project_id)
    await SequencerService(db).reorder(OrderScope.folders(reorder.project_id), reorder.folder_ids)
    await db.commit()


# ============================================================================
# Documents
# ============================================================================

@documents_router.post("/", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_document(
    document_data: DocumentCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Document:
    service = TaskMutationService(db)
    project_id = await _folder_project(db, document_data.folder_id)
    await service.ensure_project_access(current_user, project_id)
    return await service.create_document(
        current_user,
        document_data.folder_id,
        document_data.title,
        content=document_data.content,
    )


@documents_router.post("/reorder", status_code=status.HTTP_204_NO_CONTENT)
async def reorder_documents(
    reorder: DocumentReorder,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    project_id = await _folder_project(db, reorder.folder_id)
    await TaskMutationService(db).ensure_project_access(current_user, project_id)
    await SequencerService(db).reorder(
        OrderScope.documents(reorder.folder_id), reorder.document_ids
    )
    await db.commit()
