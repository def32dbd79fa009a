"""Invite lifecycle: create, resend, cancel, preview and accept.

Stored states are PENDING and ACCEPTED. EXPIRED is derived at read time
(PENDING with ``expires_at <= now``) and never written.
"""

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.config import Settings, get_settings
from sprintdesk.exceptions import ConflictError, NotFoundError, ValidationError
from sprintdesk.models.invite import Invite, InviteStatus
from sprintdesk.models.project import Project
from sprintdesk.models.user import User, UserRole
from sprintdesk.services.email import build_invite_email
from sprintdesk.services.notification import EmailSink, NotificationDispatcher

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_invite_token() -> str:
    return secrets.token_urlsafe(32)


class InviteService:
    """Token-issuing state machine for onboarding team members."""

    def __init__(
        self,
        db: AsyncSession,
        email_sink: EmailSink | None = None,
        settings: Settings | None = None,
        now: Clock = utcnow,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.now = now
        self.dispatcher = NotificationDispatcher(db, email_sink=email_sink, settings=self.settings)

    def _new_expiry(self) -> datetime:
        return self.now() + timedelta(days=self.settings.invite_expire_days)

    def invite_url(self, token: str) -> str:
        return f"{self.settings.app_base_url}/invite/{token}"

    async def list_invites(self) -> Sequence[Invite]:
        result = await self.db.execute(select(Invite).order_by(Invite.created_at.desc()))
        return result.scalars().all()

    async def get_invite(self, invite_id: UUID) -> Invite:
        invite = await self.db.get(Invite, invite_id)
        if invite is None:
            raise NotFoundError("Invite", invite_id)
        return invite

    async def create(
        self,
        email: str,
        project_ids: list[UUID],
        invited_by: User,
    ) -> Invite:
        """Create a PENDING invite and email the link (best-effort)."""
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required")
        if not project_ids:
            raise ValidationError("At least one project must be selected")

        existing_user = await self.db.execute(
            select(User.id).where(func.lower(User.email) == email)
        )
        if existing_user.scalar_one_or_none() is not None:
            raise ConflictError("A user with this email already exists")

        pending = await self.db.execute(
            select(Invite.id).where(
                Invite.email == email,
                Invite.status == InviteStatus.PENDING.value,
                Invite.expires_at > self.now(),
            )
        )
        if pending.first() is not None:
            raise ConflictError("An invite is already pending for this email")

        projects = await self._load_projects(project_ids)

        invite = Invite(
            email=email,
            token=generate_invite_token(),
            status=InviteStatus.PENDING.value,
            expires_at=self._new_expiry(),
            invited_by_id=invited_by.id,
            projects=projects,
        )
        self.db.add(invite)
        await self.db.commit()

        logger.info(
            "invite_created",
            invite_id=str(invite.id),
            invited_by=str(invited_by.id),
            project_count=len(projects),
        )

        self._send_invite_email(invite, invited_by)
        return invite

    async def resend(self, invite_id: UUID, sent_by: User) -> Invite:
        """Rotate the token, reset expiry and force PENDING; then resend."""
        invite = await self.get_invite(invite_id)
        if invite.status == InviteStatus.ACCEPTED.value:
            raise ConflictError("This invite has already been accepted")

        # At most one live pending invite per email
        other = await self.db.execute(
            select(Invite.id).where(
                Invite.email == invite.email,
                Invite.id != invite.id,
                Invite.status == InviteStatus.PENDING.value,
                Invite.expires_at > self.now(),
            )
        )
        if other.first() is not None:
            raise ConflictError("Another invite is already pending for this email")

        invite.token = generate_invite_token()
        invite.expires_at = self._new_expiry()
        invite.status = InviteStatus.PENDING.value
        await self.db.commit()

        logger.info("invite_resent", invite_id=str(invite.id))

        self._send_invite_email(invite, sent_by)
        return invite

    async def cancel(self, invite_id: UUID) -> None:
        """Delete a PENDING invite."""
        invite = await self.get_invite(invite_id)
        if invite.status != InviteStatus.PENDING.value:
            raise ConflictError("Only pending invites can be cancelled")

        await self.db.delete(invite)
        await self.db.commit()

        logger.info("invite_cancelled", invite_id=str(invite_id))

    async def preview(self, token: str) -> Invite:
        """Look up an invite that can still be accepted."""
        result = await self.db.execute(select(Invite).where(Invite.token == token))
        invite = result.scalar_one_or_none()
        if invite is None:
            raise NotFoundError("Invite")

        status = invite.effective_status(self.now())
        if status == InviteStatus.ACCEPTED:
            raise ConflictError("This invite has already been used")
        if status == InviteStatus.EXPIRED:
            raise ConflictError("This invite has expired")
        return invite

    async def accept(self, token: str, display_name: str) -> User:
        """Create the member account and mark the invite ACCEPTED together."""
        display_name = (display_name or "").strip()
        if not display_name:
            raise ValidationError("Name is required")

        invite = await self.preview(token)

        existing_user = await self.db.execute(
            select(User.id).where(func.lower(User.email) == invite.email)
        )
        if existing_user.scalar_one_or_none() is not None:
            raise ConflictError("A user with this email already exists")

        user = User(
            email=invite.email,
            display_name=display_name,
            role=UserRole.MEMBER.value,
        )
        self.db.add(user)
        await self.db.flush()

        for project in invite.projects:
            project.members.append(user)

        invite.status = InviteStatus.ACCEPTED.value
        invite.accepted_at = self.now()
        await self.db.commit()

        logger.info(
            "invite_accepted",
            invite_id=str(invite.id),
            user_id=str(user.id),
        )
        return user

    async def _load_projects(self, project_ids: list[UUID]) -> list[Project]:
        unique_ids = list(dict.fromkeys(project_ids))
        result = await self.db.execute(select(Project).where(Project.id.in_(unique_ids)))
        projects = list(result.scalars().all())
        if len(projects) != len(unique_ids):
            found = {p.id for p in projects}
            missing = next(pid for pid in unique_ids if pid not in found)
            raise NotFoundError("Project", missing)
        return projects

    def _send_invite_email(self, invite: Invite, inviter: User) -> None:
        self.dispatcher.queue(
            build_invite_email(
                email=invite.email,
                inviter_name=inviter.display_name,
                invite_url=self.invite_url(invite.token),
                project_names=[p.name for p in invite.projects],
                expire_days=self.settings.invite_expire_days,
            )
        )
        self.dispatcher.dispatch_pending()
