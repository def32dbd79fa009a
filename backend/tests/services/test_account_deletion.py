"""Account deletion saga.

Invariants:
    - Preconditions (target exists, not self, heir admin exists) are
      checked before any write
    - Deleting the sole admin fails and leaves every table unchanged
    - Owned tasks, projects, documents and epics move to the heir admin
    - Nothing authored by or addressed to the user survives except what
      was transferred
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from sprintdesk.exceptions import NoHeirAdminError, NotFoundError, ValidationError
from sprintdesk.models import (
    Activity,
    Attachment,
    Comment,
    Document,
    DocumentComment,
    DocumentVersion,
    Epic,
    Folder,
    Invite,
    Notification,
    Project,
    Task,
    User,
    UserRole,
    invite_projects,
    project_members,
)
from sprintdesk.services.account_deletion import AccountDeletionService


# -- Helpers -------------------------------------------------------------------

TABLES = (
    User, Project, Task, Epic, Comment, Attachment, Activity, Notification,
    Invite, Folder, Document, DocumentVersion, DocumentComment,
)


async def _row_counts(db):
    counts = {}
    for model in TABLES:
        result = await db.execute(select(func.count()).select_from(model))
        counts[model.__tablename__] = result.scalar_one()
    for table in (project_members, invite_projects):
        result = await db.execute(select(func.count()).select_from(table))
        counts[table.name] = result.scalar_one()
    return counts


async def _seed_footprint(db, user, project, other):
    """Give ``user`` one of everything the saga has to handle."""
    task = Task(
        title="Owned", project_id=project.id, created_by_id=user.id,
        assignee_id=user.id, order=0,
    )
    assigned = Task(
        title="Assigned only", project_id=project.id, created_by_id=other.id,
        assignee_id=user.id, order=1,
    )
    db.add_all([task, assigned])
    await db.flush()

    comment = Comment(task_id=assigned.id, author_id=user.id, content="mine")
    db.add(comment)
    await db.flush()

    folder = Folder(project_id=project.id, name="Docs", order=0)
    db.add(folder)
    await db.flush()
    document = Document(folder_id=folder.id, title="Spec", order=0, created_by_id=user.id)
    db.add(document)
    await db.flush()

    db.add_all([
        Activity(task_id=assigned.id, user_id=user.id, activity_type="CREATED"),
        Attachment(task_id=assigned.id, uploaded_by_id=user.id, filename="a.png", storage_key="k"),
        Notification(notification_type="MENTION", user_id=user.id, task_id=assigned.id),
        Notification(
            notification_type="MENTION", user_id=other.id, task_id=assigned.id,
            comment_id=comment.id, sender_id=user.id,
        ),
        Notification(
            notification_type="ASSIGNED", user_id=other.id, task_id=task.id, sender_id=user.id,
        ),
        Epic(project_id=project.id, name="Owned epic", order=0, created_by_id=user.id),
        DocumentVersion(document_id=document.id, version_number=1, content="v1", created_by_id=user.id),
        DocumentComment(document_id=document.id, author_id=user.id, content="nit"),
    ])
    await db.commit()
    return task, assigned, document


# ==============================================================================
# Preconditions
# ==============================================================================


async def test_sole_admin_cannot_be_deleted(test_db, project, admin, alice):
    await _seed_footprint(test_db, admin, project, alice)
    before = await _row_counts(test_db)

    with pytest.raises(NoHeirAdminError) as exc_info:
        await AccountDeletionService(test_db).delete_user(admin.id)

    assert isinstance(exc_info.value, ValidationError)
    assert exc_info.value.code == "NO_HEIR_ADMIN"
    assert await _row_counts(test_db) == before


async def test_cannot_delete_self(test_db, admin, make_user):
    await make_user("Second Admin", role=UserRole.ADMIN.value)
    with pytest.raises(ValidationError):
        await AccountDeletionService(test_db).delete_user(admin.id, acting_user_id=admin.id)


async def test_missing_user_raises_not_found(test_db, admin):
    with pytest.raises(NotFoundError):
        await AccountDeletionService(test_db).delete_user(uuid.uuid4(), acting_user_id=admin.id)


# ==============================================================================
# Saga
# ==============================================================================


async def test_deleting_member_transfers_ownership(test_db, project, admin, alice, bob):
    task, assigned, document = await _seed_footprint(test_db, alice, project, bob)
    alice_id = alice.id

    report = await AccountDeletionService(test_db).delete_user(alice_id, acting_user_id=admin.id)

    assert report.heir_id == admin.id
    assert report.affected["user"] == 1

    users = await test_db.execute(select(User.id).where(User.id == alice_id))
    assert users.first() is None

    owners = await test_db.execute(select(Task.id, Task.created_by_id, Task.assignee_id))
    rows = {row.id: (row.created_by_id, row.assignee_id) for row in owners}
    assert rows[task.id] == (admin.id, None)
    assert rows[assigned.id] == (bob.id, None)

    doc_owner = await test_db.execute(select(Document.created_by_id).where(Document.id == document.id))
    assert doc_owner.scalar_one() == admin.id
    epic_owner = await test_db.execute(select(Epic.created_by_id))
    assert epic_owner.scalars().all() == [admin.id]


async def test_no_rows_reference_deleted_user(test_db, project, admin, alice, bob):
    await _seed_footprint(test_db, alice, project, bob)
    alice_id = alice.id

    await AccountDeletionService(test_db).delete_user(alice_id, acting_user_id=admin.id)

    references = [
        select(Activity.id).where(Activity.user_id == alice_id),
        select(Comment.id).where(Comment.author_id == alice_id),
        select(Attachment.id).where(Attachment.uploaded_by_id == alice_id),
        select(Notification.id).where(Notification.user_id == alice_id),
        select(Notification.id).where(Notification.sender_id == alice_id),
        select(DocumentVersion.id).where(DocumentVersion.created_by_id == alice_id),
        select(DocumentComment.id).where(DocumentComment.author_id == alice_id),
        select(Task.id).where(Task.assignee_id == alice_id),
        select(Task.id).where(Task.created_by_id == alice_id),
        select(project_members.c.project_id).where(project_members.c.user_id == alice_id),
    ]
    for query in references:
        result = await test_db.execute(query)
        assert result.first() is None, str(query)

    # Bob's notifications survive; the one tied to alice's comment goes with it
    remaining = await test_db.execute(
        select(Notification.notification_type, Notification.sender_id)
    )
    assert remaining.all() == [("ASSIGNED", None)]


async def test_sent_invites_are_removed(test_db, project, admin, make_user):
    second_admin = await make_user("Second Admin", role=UserRole.ADMIN.value)
    invite = Invite(
        email="pending@example.com",
        token="tok",
        status="PENDING",
        expires_at=datetime.now(timezone.utc) + timedelta(days=7),
        invited_by_id=second_admin.id,
        projects=[project],
    )
    test_db.add(invite)
    await test_db.commit()

    report = await AccountDeletionService(test_db).delete_user(second_admin.id)

    assert report.heir_id == admin.id
    assert report.affected["invites"] == 1
    counts = await _row_counts(test_db)
    assert counts["invites"] == 0
    assert counts["invite_projects"] == 0
