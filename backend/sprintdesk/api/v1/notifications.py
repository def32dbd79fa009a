"""Notification inbox endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.api.v1.auth import CurrentUser
from sprintdesk.db.session import get_db_session
from sprintdesk.models.activity import Notification
from sprintdesk.services.notification import NotificationDispatcher

router = APIRouter()


class NotificationResponse(BaseModel):
    id: UUID
    notification_type: str
    task_id: UUID | None
    comment_id: UUID | None
    sender_id: UUID | None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class MarkReadRequest(BaseModel):
    """Mark specific notifications, or all of them when ``all`` is set."""

    notification_ids: list[UUID] = Field(default_factory=list)
    all: bool = False


class MarkReadResponse(BaseModel):
    updated: int


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[Notification]:
    """Latest notifications for the current user, newest first."""
    return list(await NotificationDispatcher(db).list_for_user(current_user.id))


@router.post("/read", response_model=MarkReadResponse)
async def mark_notifications_read(
    request: MarkReadRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> MarkReadResponse:
    dispatcher = NotificationDispatcher(db)
    if request.all:
        updated = await dispatcher.mark_all_read(current_user.id)
    else:
        updated = await dispatcher.mark_read(current_user.id, request.notification_ids)
    await db.commit()
    return MarkReadResponse(updated=updated)
