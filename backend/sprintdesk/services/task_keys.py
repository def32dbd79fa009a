"""Task key issuance (``PROJ-001`` style identifiers)."""

import re
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.exceptions import ConflictError, NotFoundError, ValidationError
from sprintdesk.models.project import Project

logger = structlog.get_logger()

PROJECT_KEY_PATTERN = re.compile(r"^[A-Z]{2,5}$")


@dataclass(frozen=True)
class IssuedKey:
    key: str
    number: int


def format_task_key(project_key: str, number: int) -> str:
    return f"{project_key}-{number:03d}"


def validate_project_key(key: str) -> str:
    """Return ``key`` if it is 2-5 uppercase letters, else raise."""
    if not key or not PROJECT_KEY_PATTERN.match(key):
        raise ValidationError("Key must be 2-5 uppercase letters")
    return key


class TaskKeyIssuer:
    """Issues immutable task keys from the per-project counter."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def issue_task_key(self, project_id: UUID) -> IssuedKey:
        """Increment the project's counter in the database and format the key.

        The increment and the read happen in a single UPDATE ... RETURNING,
        so concurrent callers never see the same number. Numbers of deleted
        tasks are not reused.
        """
        result = await self.db.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(task_counter=Project.task_counter + 1)
            .returning(Project.key, Project.task_counter)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Project", project_id)

        project_key, number = row
        issued = IssuedKey(key=format_task_key(project_key, number), number=number)

        logger.debug(
            "task_key_issued",
            project_id=str(project_id),
            task_key=issued.key,
        )
        return issued

    async def ensure_key_available(self, key: str) -> None:
        """Raise ConflictError if another project already uses ``key``."""
        validate_project_key(key)
        result = await self.db.execute(select(Project.id).where(Project.key == key))
        if result.scalar_one_or_none() is not None:
            raise ConflictError("A project with this key already exists")
