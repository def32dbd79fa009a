"""End-to-end HTTP behaviour: auth, error shape and the main workflows."""

import re
import uuid

API = "/api/v1"


def _invite_token(message) -> str:
    match = re.search(r"/invite/([A-Za-z0-9_-]+)", message.text)
    assert match, message.text
    return match.group(1)


# ==============================================================================
# Health and auth
# ==============================================================================


async def test_health(client):
    response = await client.get(f"{API}/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Request-ID" in response.headers


async def test_request_id_is_echoed_when_valid(client):
    kept = await client.get(f"{API}/health", headers={"X-Request-ID": "trace-42"})
    replaced = await client.get(f"{API}/health", headers={"X-Request-ID": "bad id!"})

    assert kept.headers["X-Request-ID"] == "trace-42"
    assert replaced.headers["X-Request-ID"] != "bad id!"


async def test_missing_token_is_unauthenticated(client):
    response = await client.get(f"{API}/users/me")

    assert response.status_code == 401
    assert response.json() == {
        "error": {"code": "UNAUTHENTICATED", "message": "Not authenticated"},
    }
    assert response.headers["WWW-Authenticate"] == "Bearer"


async def test_garbage_token_is_unauthenticated(client):
    response = await client.get(
        f"{API}/users/me", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401


async def test_me(client, auth_headers, alice):
    response = await client.get(f"{API}/users/me", headers=auth_headers(alice))

    assert response.status_code == 200
    assert response.json()["email"] == "alice@example.com"


# ==============================================================================
# Projects and tasks
# ==============================================================================


async def test_create_project_is_admin_only(client, auth_headers, admin, alice):
    body = {"name": "Website", "key": "WEB"}

    forbidden = await client.post(f"{API}/projects/", json=body, headers=auth_headers(alice))
    created = await client.post(f"{API}/projects/", json=body, headers=auth_headers(admin))

    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "FORBIDDEN"
    assert created.status_code == 201
    assert created.json()["key"] == "WEB"


async def test_task_lifecycle(client, auth_headers, project, alice, bob):
    headers = auth_headers(alice)

    created = await client.post(
        f"{API}/tasks/",
        json={"title": "Ship it", "project_id": str(project.id)},
        headers=headers,
    )
    assert created.status_code == 201
    task = created.json()
    assert task["task_key"] == "CORE-001"
    assert task["order"] == 0

    updated = await client.patch(
        f"{API}/tasks/{task['id']}",
        json={"status": "IN_PROGRESS", "assignee_id": str(bob.id)},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "IN_PROGRESS"
    assert updated.json()["assignee_id"] == str(bob.id)

    activities = await client.get(f"{API}/tasks/{task['id']}/activities", headers=headers)
    assert activities.status_code == 200
    types = {a["activity_type"] for a in activities.json()}
    assert types == {"CREATED", "STATUS_CHANGED", "ASSIGNED"}

    listed = await client.get(
        f"{API}/tasks/", params={"project_id": str(project.id)}, headers=headers
    )
    assert [t["id"] for t in listed.json()] == [task["id"]]


async def test_unknown_task_error_shape(client, auth_headers, alice):
    response = await client.get(f"{API}/tasks/{uuid.uuid4()}", headers=auth_headers(alice))

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "NOT_FOUND"
    assert error["message"] == "Task not found"


async def test_outsider_cannot_create_task(client, auth_headers, project, make_user):
    outsider = await make_user("Olive Outsider")

    response = await client.post(
        f"{API}/tasks/",
        json={"title": "Sneaky", "project_id": str(project.id)},
        headers=auth_headers(outsider),
    )

    assert response.status_code == 403


async def test_reorder_tasks(client, auth_headers, project, alice):
    headers = auth_headers(alice)
    ids = []
    for title in ("One", "Two", "Three"):
        response = await client.post(
            f"{API}/tasks/",
            json={"title": title, "project_id": str(project.id)},
            headers=headers,
        )
        ids.append(response.json()["id"])

    reordered = await client.post(
        f"{API}/tasks/reorder",
        json={"project_id": str(project.id), "task_ids": list(reversed(ids))},
        headers=headers,
    )
    listed = await client.get(
        f"{API}/tasks/", params={"project_id": str(project.id)}, headers=headers
    )

    assert reordered.status_code == 204
    assert [t["id"] for t in listed.json()] == list(reversed(ids))


async def test_reorder_rejects_sprint_of_other_project(
    client, auth_headers, project, make_project, make_sprint, admin, alice
):
    other = await make_project("OPS", admin)
    foreign_sprint = await make_sprint(other, "Ops 1")
    admin_headers = auth_headers(admin)
    ids = []
    for title in ("One", "Two"):
        response = await client.post(
            f"{API}/tasks/",
            json={
                "title": title,
                "project_id": str(other.id),
                "sprint_id": str(foreign_sprint.id),
            },
            headers=admin_headers,
        )
        ids.append(response.json()["id"])

    reordered = await client.post(
        f"{API}/tasks/reorder",
        json={
            "project_id": str(project.id),
            "sprint_id": str(foreign_sprint.id),
            "task_ids": list(reversed(ids)),
        },
        headers=auth_headers(alice),
    )
    listed = await client.get(
        f"{API}/tasks/",
        params={"project_id": str(other.id), "sprint_id": str(foreign_sprint.id)},
        headers=admin_headers,
    )

    assert reordered.status_code == 400
    assert reordered.json()["error"]["code"] == "VALIDATION_ERROR"
    assert [t["id"] for t in listed.json()] == ids


async def test_split_task_keeps_sprint_by_default(
    client, auth_headers, project, make_sprint, alice
):
    sprint = await make_sprint(project, "Sprint 1")
    headers = auth_headers(alice)
    created = await client.post(
        f"{API}/tasks/",
        json={"title": "Checkout", "project_id": str(project.id), "sprint_id": str(sprint.id)},
        headers=headers,
    )
    source = created.json()

    split = await client.post(f"{API}/tasks/{source['id']}/split", json={}, headers=headers)
    to_backlog = await client.post(
        f"{API}/tasks/{source['id']}/split", json={"sprint_id": None}, headers=headers
    )

    assert split.status_code == 201
    body = split.json()
    assert body["title"] == "Checkout #2"
    assert body["task_key"] == "CORE-002"
    assert body["split_from_id"] == source["id"]
    assert body["sprint_id"] == str(sprint.id)
    assert body["order"] == 1

    assert to_backlog.status_code == 201
    assert to_backlog.json()["title"] == "Checkout #3"
    assert to_backlog.json()["sprint_id"] is None


# ==============================================================================
# Comments and notifications
# ==============================================================================


async def test_mention_creates_notification(client, auth_headers, project, alice, bob, sent_emails):
    created = await client.post(
        f"{API}/tasks/",
        json={"title": "Review", "project_id": str(project.id)},
        headers=auth_headers(alice),
    )
    task_id = created.json()["id"]

    comment = await client.post(
        f"{API}/tasks/{task_id}/comments",
        json={"content": "@bob can you look?"},
        headers=auth_headers(alice),
    )
    assert comment.status_code == 201
    assert comment.json()["task_status_at_creation"] == "TODO"

    inbox = await client.get(f"{API}/notifications/", headers=auth_headers(bob))
    notifications = inbox.json()
    assert [n["notification_type"] for n in notifications] == ["MENTION"]
    assert notifications[0]["is_read"] is False
    assert [m.to_email for m in sent_emails] == ["bob@example.com"]

    marked = await client.post(
        f"{API}/notifications/read", json={"all": True}, headers=auth_headers(bob)
    )
    assert marked.json() == {"updated": 1}

    inbox = await client.get(f"{API}/notifications/", headers=auth_headers(bob))
    assert inbox.json()[0]["is_read"] is True


# ==============================================================================
# Invites
# ==============================================================================


async def test_invite_flow(client, auth_headers, admin, project, sent_emails):
    created = await client.post(
        f"{API}/invites/",
        json={"email": "New.Hire@Example.com", "project_ids": [str(project.id)]},
        headers=auth_headers(admin),
    )
    assert created.status_code == 201
    assert created.json()["email"] == "new.hire@example.com"
    assert created.json()["status"] == "PENDING"

    token = _invite_token(sent_emails[-1])

    preview = await client.get(f"{API}/invites/token/{token}")
    assert preview.status_code == 200
    assert [p["key"] for p in preview.json()["projects"]] == ["CORE"]

    accepted = await client.post(
        f"{API}/invites/token/{token}/accept", json={"display_name": "New Hire"}
    )
    assert accepted.status_code == 201
    assert accepted.json()["role"] == "MEMBER"

    again = await client.post(
        f"{API}/invites/token/{token}/accept", json={"display_name": "New Hire"}
    )
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "CONFLICT"


async def test_invites_require_admin(client, auth_headers, alice):
    response = await client.get(f"{API}/invites/", headers=auth_headers(alice))

    assert response.status_code == 403


# ==============================================================================
# Account deletion
# ==============================================================================


async def test_delete_user(client, auth_headers, project, admin, alice):
    created = await client.post(
        f"{API}/tasks/",
        json={"title": "Orphan", "project_id": str(project.id)},
        headers=auth_headers(alice),
    )
    task_id = created.json()["id"]

    response = await client.delete(f"{API}/users/{alice.id}", headers=auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["heir_id"] == str(admin.id)
    assert body["affected"]["transferred_tasks"] == 1

    task = await client.get(f"{API}/tasks/{task_id}", headers=auth_headers(admin))
    assert task.json()["created_by_id"] == str(admin.id)


async def test_members_cannot_delete_users(client, auth_headers, admin, alice):
    response = await client.delete(f"{API}/users/{admin.id}", headers=auth_headers(alice))

    assert response.status_code == 403


async def test_cannot_delete_self(client, auth_headers, admin):
    response = await client.delete(f"{API}/users/{admin.id}", headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "CANNOT_DELETE_SELF"
