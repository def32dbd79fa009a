"""Add split_from_id to tasks for split chains.

Revision ID: 002
Revises: 001
Create Date: 2026-10-25

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "tasks",
        sa.Column("split_from_id", postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_foreign_key(
        "fk_tasks_split_from_id",
        "tasks",
        "tasks",
        ["split_from_id"],
        ["id"],
        ondelete="SET NULL",
    )
    op.create_index("ix_tasks_split_from_id", "tasks", ["split_from_id"])


def downgrade() -> None:
    op.drop_index("ix_tasks_split_from_id", table_name="tasks")
    op.drop_constraint("fk_tasks_split_from_id", "tasks", type_="foreignkey")
    op.drop_column("tasks", "split_from_id")
