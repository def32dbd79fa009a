"""Team invite model."""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Column, DateTime, ForeignKey, String, Table, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sprintdesk.db.base import Base, BaseModel

if TYPE_CHECKING:
    from sprintdesk.models.project import Project


class InviteStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    # Never stored: derived at read time from expires_at
    EXPIRED = "EXPIRED"


invite_projects = Table(
    "invite_projects",
    Base.metadata,
    Column(
        "invite_id",
        Uuid(as_uuid=True),
        ForeignKey("invites.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "project_id",
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Invite(BaseModel):
    """
    Invitation for a new team member to join one or more projects.

    Stored status is PENDING or ACCEPTED; an invite whose expiry has
    passed while still PENDING reads as EXPIRED.
    """

    __tablename__ = "invites"

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InviteStatus.PENDING.value,
        comment="PENDING, ACCEPTED",
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    invited_by_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    projects: Mapped[list["Project"]] = relationship(
        "Project", secondary=invite_projects, lazy="selectin"
    )

    def is_expired(self, now: datetime) -> bool:
        return (
            self.status == InviteStatus.PENDING.value
            and as_utc(self.expires_at) <= now
        )

    def effective_status(self, now: datetime) -> InviteStatus:
        """Status as callers should see it at ``now``."""
        if self.is_expired(now):
            return InviteStatus.EXPIRED
        return InviteStatus(self.status)

    def __repr__(self) -> str:
        return f"<Invite {self.email} {self.status}>"
