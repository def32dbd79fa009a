"""Invite endpoints.

Admins create, resend and cancel invites. The token endpoints are public:
they back the invite landing page and account creation.
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.api.deps import EmailSinkDep
from sprintdesk.api.v1.auth import AdminUser
from sprintdesk.db.session import get_db_session
from sprintdesk.models.invite import Invite
from sprintdesk.models.user import User
from sprintdesk.services.invites import InviteService, utcnow

router = APIRouter()
logger = structlog.get_logger()


# ============================================================================
# Schemas
# ============================================================================

class InviteCreate(BaseModel):
    """Invite someone to one or more projects."""

    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    project_ids: list[UUID] = Field(..., min_length=1)


class InviteProject(BaseModel):
    id: UUID
    name: str
    key: str

    class Config:
        from_attributes = True


class InviteResponse(BaseModel):
    """Invite as seen by admins."""

    id: UUID
    email: str
    status: str
    expires_at: datetime
    accepted_at: datetime | None
    invited_by_id: UUID
    projects: list[InviteProject]
    created_at: datetime


class InvitePreviewResponse(BaseModel):
    """What the invitee sees before accepting."""

    email: str
    expires_at: datetime
    projects: list[InviteProject]


class InviteAccept(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=255)


class AcceptedUserResponse(BaseModel):
    id: UUID
    email: str
    display_name: str
    role: str

    class Config:
        from_attributes = True


def _invite_response(invite: Invite) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        email=invite.email,
        status=invite.effective_status(utcnow()).value,
        expires_at=invite.expires_at,
        accepted_at=invite.accepted_at,
        invited_by_id=invite.invited_by_id,
        projects=[InviteProject.model_validate(p) for p in invite.projects],
        created_at=invite.created_at,
    )


# ============================================================================
# Admin endpoints
# ============================================================================

@router.get("/", response_model=list[InviteResponse])
async def list_invites(
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[InviteResponse]:
    """All invites, newest first, with derived EXPIRED status."""
    invites = await InviteService(db).list_invites()
    return [_invite_response(invite) for invite in invites]


@router.post("/", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def create_invite(
    invite_data: InviteCreate,
    current_user: AdminUser,
    email_sink: EmailSinkDep,
    db: AsyncSession = Depends(get_db_session),
) -> InviteResponse:
    service = InviteService(db, email_sink=email_sink)
    invite = await service.create(invite_data.email, invite_data.project_ids, current_user)
    return _invite_response(invite)


@router.post("/{invite_id}/resend", response_model=InviteResponse)
async def resend_invite(
    invite_id: UUID,
    current_user: AdminUser,
    email_sink: EmailSinkDep,
    db: AsyncSession = Depends(get_db_session),
) -> InviteResponse:
    """Issue a fresh token and expiry and email the link again."""
    service = InviteService(db, email_sink=email_sink)
    invite = await service.resend(invite_id, current_user)
    return _invite_response(invite)


@router.delete("/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_invite(
    invite_id: UUID,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    await InviteService(db).cancel(invite_id)


# ============================================================================
# Public token endpoints
# ============================================================================

@router.get("/token/{token}", response_model=InvitePreviewResponse)
async def preview_invite(
    token: str,
    db: AsyncSession = Depends(get_db_session),
) -> InvitePreviewResponse:
    invite = await InviteService(db).preview(token)
    return InvitePreviewResponse(
        email=invite.email,
        expires_at=invite.expires_at,
        projects=[InviteProject.model_validate(p) for p in invite.projects],
    )


@router.post(
    "/token/{token}/accept",
    response_model=AcceptedUserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def accept_invite(
    token: str,
    accept_data: InviteAccept,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Create the member account and join the invite's projects."""
    return await InviteService(db).accept(token, accept_data.display_name)
