"""User administration endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.api.v1.auth import AdminUser, CurrentUser
from sprintdesk.db.session import get_db_session
from sprintdesk.models.user import User
from sprintdesk.services.account_deletion import AccountDeletionService

router = APIRouter()


class UserResponse(BaseModel):
    """User information response."""

    id: UUID
    email: str
    display_name: str
    avatar_url: str | None
    role: str
    created_at: datetime

    class Config:
        from_attributes = True


class UserDeletionResponse(BaseModel):
    """What the deletion removed or handed over."""

    user_id: UUID
    heir_id: UUID
    affected: dict[str, int]


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: CurrentUser) -> User:
    """Get current user information."""
    return current_user


@router.get("/", response_model=list[UserResponse])
async def list_users(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[User]:
    result = await db.execute(select(User).order_by(User.display_name))
    return list(result.scalars().all())


@router.delete("/{user_id}", response_model=UserDeletionResponse)
async def delete_user(
    user_id: UUID,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> UserDeletionResponse:
    """Delete a user; their tasks, projects, documents and epics go to another admin."""
    report = await AccountDeletionService(db).delete_user(user_id, acting_user_id=current_user.id)
    return UserDeletionResponse(
        user_id=report.user_id,
        heir_id=report.heir_id,
        affected=report.affected,
    )
