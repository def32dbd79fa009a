"""Task mutations: create, update, delete, move, comment; epics and documents.

Invariants:
    - New tasks get the next rank in their scope and a fresh KEY-NNN key
    - assigned_at is set exactly when an assignee is set
    - Each tracked change becomes one activity; re-sending a value adds none
    - Assigning someone else creates one notification and one email;
      self-assignment creates neither
    - A failing email sink never fails the mutation
    - Sprints and epics referenced by a task belong to its project
    - A split task is numbered by the size of its chain and points back
      at its source

Design Decisions:
    - Emails land in the list-backed ``sent_emails`` fixture
    - Activity rows are counted with column selects per test
"""

import uuid

import pytest
from sqlalchemy import func, select

from sprintdesk.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from sprintdesk.models import Activity, Comment, Epic, Notification, Task
from sprintdesk.services.activity import Assigned, StatusChanged
from sprintdesk.services.email import EmailKind
from sprintdesk.services.task_mutation import TaskMutationService


# -- Helpers -------------------------------------------------------------------

async def _activity_types(db, task_id):
    result = await db.execute(
        select(Activity.activity_type).where(Activity.task_id == task_id)
    )
    return sorted(result.scalars().all())


async def _count(db, model, *conditions):
    result = await db.execute(select(func.count()).select_from(model).where(*conditions))
    return result.scalar_one()


@pytest.fixture
def service(test_db, email_sink):
    return TaskMutationService(test_db, email_sink=email_sink)


# ==============================================================================
# create_task
# ==============================================================================


async def test_create_task_issues_key_and_rank(service, test_db, project, alice):
    first = await service.create_task(alice, {"title": "One", "project_id": project.id})
    second = await service.create_task(alice, {"title": "Two", "project_id": project.id})

    assert (first.task_key, first.order) == ("CORE-001", 0)
    assert (second.task_key, second.order) == ("CORE-002", 1)
    assert first.status == "TODO"
    assert first.priority == "MEDIUM"
    assert await _activity_types(test_db, first.id) == ["CREATED"]


async def test_create_task_in_sprint_ranks_within_sprint(
    service, project, alice, make_sprint,
):
    sprint = await make_sprint(project, "Sprint 1")
    await service.create_task(alice, {"title": "Backlog item", "project_id": project.id})

    task = await service.create_task(
        alice, {"title": "Planned", "project_id": project.id, "sprint_id": sprint.id}
    )

    assert task.order == 0
    assert task.sprint_id == sprint.id


async def test_create_assigned_task_notifies_assignee(
    service, test_db, project, alice, bob, sent_emails,
):
    task = await service.create_task(
        alice, {"title": "Review", "project_id": project.id, "assignee_id": bob.id}
    )

    assert task.assigned_at is not None
    assert await _count(test_db, Notification, Notification.user_id == bob.id) == 1
    assert [m.kind for m in sent_emails] == [EmailKind.TASK_ASSIGNED]
    assert sent_emails[0].to_email == "bob@example.com"


async def test_create_without_title_is_rejected(service, project, alice):
    with pytest.raises(ValidationError):
        await service.create_task(alice, {"title": "  ", "project_id": project.id})


async def test_create_in_missing_project_raises_not_found(service, alice):
    with pytest.raises(NotFoundError):
        await service.create_task(alice, {"title": "Lost", "project_id": uuid.uuid4()})


async def test_non_member_cannot_create(service, project, make_user):
    outsider = await make_user("Olga Outsider")
    with pytest.raises(ForbiddenError):
        await service.create_task(outsider, {"title": "Sneaky", "project_id": project.id})


# ==============================================================================
# update_task
# ==============================================================================


async def test_status_change_logs_exactly_one_activity(service, test_db, project, alice):
    task = await service.create_task(alice, {"title": "Ship it", "project_id": project.id})

    _, changes = await service.update_task(alice, task.id, {"status": "DONE"})

    assert changes == [StatusChanged("TODO", "DONE")]
    result = await test_db.execute(
        select(Activity.extra_data).where(
            Activity.task_id == task.id, Activity.activity_type == "STATUS_CHANGED"
        )
    )
    assert result.scalars().all() == [{"from": "TODO", "to": "DONE"}]


async def test_resubmitting_same_status_logs_nothing(service, test_db, project, alice):
    task = await service.create_task(alice, {"title": "Ship it", "project_id": project.id})
    await service.update_task(alice, task.id, {"status": "DONE"})

    _, changes = await service.update_task(alice, task.id, {"status": "DONE"})

    assert changes == []
    assert await _activity_types(test_db, task.id) == ["CREATED", "STATUS_CHANGED"]


async def test_assigning_other_user_notifies_once(
    service, test_db, project, alice, bob, sent_emails,
):
    task = await service.create_task(alice, {"title": "Pair up", "project_id": project.id})

    updated, changes = await service.update_task(alice, task.id, {"assignee_id": bob.id})

    assert changes == [Assigned(None, "Bob Jones", bob.id)]
    assert updated.assigned_at is not None
    assert await _count(test_db, Notification, Notification.user_id == bob.id) == 1
    assert len(sent_emails) == 1
    assert sent_emails[0].kind == EmailKind.TASK_ASSIGNED


async def test_self_assignment_logs_but_does_not_notify(
    service, test_db, project, alice, sent_emails,
):
    task = await service.create_task(alice, {"title": "Mine", "project_id": project.id})

    _, changes = await service.update_task(alice, task.id, {"assignee_id": alice.id})

    assert len(changes) == 1
    assert await _count(test_db, Notification) == 0
    assert sent_emails == []


async def test_unassign_clears_assigned_at(service, project, alice, bob):
    task = await service.create_task(
        alice, {"title": "Handover", "project_id": project.id, "assignee_id": bob.id}
    )

    updated, _ = await service.update_task(alice, task.id, {"assignee_id": None})

    assert updated.assignee_id is None
    assert updated.assigned_at is None


async def test_sink_failure_does_not_fail_update(test_db, project, alice, bob):
    def broken_sink(message):
        raise ConnectionError("broker down")

    service = TaskMutationService(test_db, email_sink=broken_sink)
    task = await service.create_task(alice, {"title": "Resilient", "project_id": project.id})

    updated, _ = await service.update_task(alice, task.id, {"assignee_id": bob.id})

    assert updated.assignee_id == bob.id
    result = await test_db.execute(select(Task.assignee_id).where(Task.id == task.id))
    assert result.scalar_one() == bob.id


async def test_unknown_status_is_rejected(service, project, alice):
    task = await service.create_task(alice, {"title": "Strict", "project_id": project.id})
    with pytest.raises(ValidationError):
        await service.update_task(alice, task.id, {"status": "SHIPPED"})


async def test_update_missing_task_raises_not_found(service, alice):
    with pytest.raises(NotFoundError):
        await service.update_task(alice, uuid.uuid4(), {"status": "DONE"})


async def test_moving_to_sprint_appends_to_sprint(service, test_db, project, alice, make_sprint):
    sprint = await make_sprint(project, "Sprint 2")
    await service.create_task(
        alice, {"title": "Already there", "project_id": project.id, "sprint_id": sprint.id}
    )
    task = await service.create_task(alice, {"title": "Joining", "project_id": project.id})

    updated, _ = await service.update_task(alice, task.id, {"sprint_id": sprint.id})

    assert updated.order == 1
    assert "MOVED_TO_SPRINT" in await _activity_types(test_db, task.id)


# ==============================================================================
# delete_task / move_task
# ==============================================================================


async def test_only_creator_or_admin_may_delete(service, test_db, project, alice, bob, admin):
    task = await service.create_task(alice, {"title": "Mine", "project_id": project.id})

    with pytest.raises(ForbiddenError):
        await service.delete_task(bob, task.id)

    await service.delete_task(admin, task.id)
    assert await _count(test_db, Task, Task.id == task.id) == 0


async def test_move_task_logs_sprint_change(service, test_db, project, alice, make_sprint):
    sprint = await make_sprint(project, "Sprint 1")
    task = await service.create_task(alice, {"title": "Drag me", "project_id": project.id})

    moved = await service.move_task(alice, task.id, sprint.id, 0)

    assert moved.sprint_id == sprint.id
    result = await test_db.execute(
        select(Activity.extra_data).where(
            Activity.task_id == task.id, Activity.activity_type == "MOVED_TO_SPRINT"
        )
    )
    assert result.scalars().all() == [{"from": "Backlog", "to": "Sprint 1"}]


# ==============================================================================
# add_comment
# ==============================================================================


async def test_comment_records_status_and_activity(service, test_db, project, alice):
    task = await service.create_task(alice, {"title": "Discuss", "project_id": project.id})
    await service.update_task(alice, task.id, {"status": "BLOCKED"})

    comment = await service.add_comment(alice, task.id, "Waiting on design")

    assert comment.task_status_at_creation == "BLOCKED"
    result = await test_db.execute(
        select(Activity.extra_data).where(
            Activity.task_id == task.id, Activity.activity_type == "COMMENT_ADDED"
        )
    )
    assert result.scalars().all() == [{"commentId": str(comment.id)}]


async def test_comment_mentions_notify_and_email(
    service, test_db, project, alice, bob, sent_emails,
):
    task = await service.create_task(alice, {"title": "Discuss", "project_id": project.id})

    comment = await service.add_comment(alice, task.id, "@bobjones can you check?")

    result = await test_db.execute(
        select(Notification.user_id, Notification.notification_type, Notification.comment_id)
    )
    assert result.all() == [(bob.id, "MENTION", comment.id)]
    assert [m.kind for m in sent_emails] == [EmailKind.MENTION]


async def test_comment_emails_assignee_and_creator_not_author(
    service, project, alice, bob, admin, sent_emails,
):
    task = await service.create_task(
        alice, {"title": "Discuss", "project_id": project.id, "assignee_id": bob.id}
    )
    sent_emails.clear()

    await service.add_comment(admin, task.id, "Looks good")

    recipients = [(m.kind, m.to_email) for m in sent_emails]
    assert recipients == [
        (EmailKind.COMMENT, "bob@example.com"),
        (EmailKind.COMMENT, "alice@example.com"),
    ]


async def test_empty_comment_is_rejected(service, project, alice):
    task = await service.create_task(alice, {"title": "Quiet", "project_id": project.id})
    with pytest.raises(ValidationError):
        await service.add_comment(alice, task.id, "   ")
    assert await _count(service.db, Comment) == 0


# ==============================================================================
# Epics, folders, documents, projects
# ==============================================================================


async def test_epics_append_and_delete_keeps_tasks(service, test_db, project, alice):
    first = await service.create_epic(alice, project.id, "Auth")
    second = await service.create_epic(alice, project.id, "Billing")
    assert (first.order, second.order) == (0, 1)

    task = await service.create_task(
        alice, {"title": "SSO", "project_id": project.id, "epic_id": first.id}
    )

    await service.delete_epic(first.id)

    assert await _count(test_db, Epic, Epic.id == first.id) == 0
    result = await test_db.execute(select(Task.epic_id).where(Task.id == task.id))
    assert result.scalar_one() is None


async def test_documents_append_within_folder(service, project, alice, make_folder):
    folder = await make_folder(project)

    first = await service.create_document(alice, folder.id, "Overview")
    second = await service.create_document(alice, folder.id, "Runbook")

    assert (first.order, second.order) == (0, 1)


async def test_folders_append_within_project(service, project):
    first = await service.create_folder(project.id, "Specs")
    second = await service.create_folder(project.id, "Notes")
    assert (first.order, second.order) == (0, 1)


async def test_create_project_rejects_duplicate_key(service, project, admin):
    with pytest.raises(ConflictError):
        await service.create_project(admin, "Another core", "CORE")


async def test_create_project_adds_creator_as_member(service, admin):
    created = await service.create_project(admin, "Platform", "PLAT")

    assert created.task_counter == 0
    assert [m.id for m in created.members] == [admin.id]


# ==============================================================================
# Epic links
# ==============================================================================


async def test_epic_from_other_project_is_rejected(
    service, test_db, project, make_project, admin, alice
):
    other = await make_project("OPS", admin)
    foreign_epic = await service.create_epic(admin, other.id, "Elsewhere")
    task = await service.create_task(alice, {"title": "Linked", "project_id": project.id})

    with pytest.raises(ValidationError):
        await service.update_task(alice, task.id, {"epic_id": foreign_epic.id})
    with pytest.raises(ValidationError):
        await service.create_task(
            alice, {"title": "Also", "project_id": project.id, "epic_id": foreign_epic.id}
        )


async def test_unknown_epic_is_rejected(service, project, alice):
    task = await service.create_task(alice, {"title": "Linked", "project_id": project.id})

    with pytest.raises(ValidationError):
        await service.update_task(alice, task.id, {"epic_id": uuid.uuid4()})


async def test_epic_in_same_project_is_linked(service, test_db, project, alice):
    epic = await service.create_epic(alice, project.id, "Auth")
    task = await service.create_task(alice, {"title": "Linked", "project_id": project.id})

    await service.update_task(alice, task.id, {"epic_id": epic.id})

    result = await test_db.execute(select(Task.epic_id).where(Task.id == task.id))
    assert result.scalar_one() == epic.id


# ==============================================================================
# reorder_tasks
# ==============================================================================


async def test_reorder_rejects_sprint_of_other_project(
    service, test_db, project, make_project, make_sprint, admin, alice
):
    other = await make_project("OPS", admin)
    foreign_sprint = await make_sprint(other, "Ops 1")
    first = await service.create_task(
        admin, {"title": "A", "project_id": other.id, "sprint_id": foreign_sprint.id}
    )
    second = await service.create_task(
        admin, {"title": "B", "project_id": other.id, "sprint_id": foreign_sprint.id}
    )

    with pytest.raises(ValidationError):
        await service.reorder_tasks(alice, project.id, foreign_sprint.id, [second.id, first.id])

    result = await test_db.execute(
        select(Task.order).where(Task.id.in_([first.id, second.id])).order_by(Task.title)
    )
    assert result.scalars().all() == [0, 1]


async def test_reorder_sprint_tasks(service, test_db, project, make_sprint, alice):
    sprint = await make_sprint(project, "Sprint 1")
    first = await service.create_task(
        alice, {"title": "A", "project_id": project.id, "sprint_id": sprint.id}
    )
    second = await service.create_task(
        alice, {"title": "B", "project_id": project.id, "sprint_id": sprint.id}
    )

    await service.reorder_tasks(alice, project.id, sprint.id, [second.id, first.id])

    result = await test_db.execute(
        select(Task.order).where(Task.id.in_([first.id, second.id])).order_by(Task.title)
    )
    assert result.scalars().all() == [1, 0]


# ==============================================================================
# split_task
# ==============================================================================


async def test_split_creates_numbered_follow_up(
    service, test_db, project, make_sprint, alice, bob
):
    sprint_1 = await make_sprint(project, "Sprint 1", order=0)
    sprint_2 = await make_sprint(project, "Sprint 2", order=1)
    source = await service.create_task(
        alice,
        {
            "title": "Checkout flow",
            "description": "Card and wallet",
            "project_id": project.id,
            "sprint_id": sprint_1.id,
            "assignee_id": bob.id,
            "priority": "HIGH",
        },
    )
    await service.update_task(alice, source.id, {"status": "IN_PROGRESS"})
    await service.add_comment(alice, source.id, "Card part done")

    split = await service.split_task(alice, source.id, sprint_2.id)

    assert split.title == "Checkout flow #2"
    assert split.task_key == "CORE-002"
    assert split.split_from_id == source.id
    assert (split.sprint_id, split.order) == (sprint_2.id, 0)
    assert (split.status, split.priority) == ("TODO", "HIGH")
    assert split.description == "Card and wallet"
    assert split.assignee_id == bob.id

    copied = await test_db.execute(select(Comment.content).where(Comment.task_id == split.id))
    assert copied.scalars().all() == ["Card part done"]


async def test_split_records_activities_on_both_tasks(
    service, test_db, project, make_sprint, alice
):
    sprint = await make_sprint(project, "Sprint 1")
    source = await service.create_task(
        alice, {"title": "Search", "project_id": project.id, "sprint_id": sprint.id}
    )

    split = await service.split_task(alice, source.id, None, copy_comments=False)

    source_rows = await test_db.execute(
        select(Activity.activity_type, Activity.extra_data).where(
            Activity.task_id == source.id, Activity.activity_type == "SPLIT"
        )
    )
    (split_row,) = source_rows.all()
    assert split_row.extra_data == {
        "newTaskId": str(split.id),
        "newTaskTitle": "Search #2",
        "splitNumber": 2,
        "targetSprint": "Backlog",
        "commentsCopied": 0,
        "descriptionCopied": True,
    }

    new_rows = await test_db.execute(
        select(Activity.activity_type, Activity.extra_data).where(Activity.task_id == split.id)
    )
    assert new_rows.all() == [
        ("CREATED", {"splitFrom": "Search", "splitNumber": 2, "fromSprint": "Sprint 1"})
    ]


async def test_split_chain_numbers_continue(service, project, alice):
    root = await service.create_task(alice, {"title": "Migrate DB", "project_id": project.id})

    second = await service.split_task(alice, root.id, None)
    third = await service.split_task(alice, second.id, None)
    fourth = await service.split_task(alice, root.id, None)

    assert [second.title, third.title, fourth.title] == [
        "Migrate DB #2",
        "Migrate DB #3",
        "Migrate DB #4",
    ]


async def test_split_without_description_or_comments(service, test_db, project, alice):
    source = await service.create_task(
        alice, {"title": "Docs", "description": "Long text", "project_id": project.id}
    )
    await service.add_comment(alice, source.id, "note")

    split = await service.split_task(
        alice, source.id, None, copy_comments=False, copy_description=False
    )

    assert split.description is None
    assert await _count(test_db, Comment, Comment.task_id == split.id) == 0


async def test_split_into_foreign_sprint_is_rejected(
    service, project, make_project, make_sprint, admin, alice
):
    other = await make_project("OPS", admin)
    foreign_sprint = await make_sprint(other, "Ops 1")
    source = await service.create_task(alice, {"title": "Mine", "project_id": project.id})

    with pytest.raises(ValidationError):
        await service.split_task(alice, source.id, foreign_sprint.id)


async def test_outsider_cannot_split(service, project, alice, make_user):
    outsider = await make_user("Olive Outsider")
    source = await service.create_task(alice, {"title": "Mine", "project_id": project.id})

    with pytest.raises(ForbiddenError):
        await service.split_task(outsider, source.id, None)
