"""
HTTP-level tests for the Task Tracker API.

Exercises every endpoint through FastAPI's TestClient against a real
temporary SQLite database, covering the response envelope, status codes,
ownership isolation and pagination.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import USER_A, USER_B, auth_headers
from task_tracker.database import new_task_id
from task_tracker.service import TaskService

TASKS_URL = "/api/v1/tasks"


class TestCreateTask:

    def test_create_task(self, client):
        response = client.post(
            TASKS_URL,
            json={"title": "Test Task", "description": "This is a test task"},
            headers=auth_headers(USER_A),
        )

        assert response.status_code == 201
        body = response.json()
        assert set(body["data"]) == {
            "_id", "title", "description", "status", "userId", "createdAt", "updatedAt"
        }
        assert len(body["data"]["_id"]) == 24
        assert body["data"]["title"] == "Test Task"
        assert body["data"]["description"] == "This is a test task"
        assert body["data"]["status"] == "To do"
        assert body["data"]["userId"] == USER_A

    def test_create_task_with_custom_status(self, create_task):
        task = create_task(status="In Progress")
        assert task["status"] == "In Progress"

    def test_create_without_user_header(self, client):
        response = client.post(
            TASKS_URL, json={"title": "Test Task", "description": "This is a test task"}
        )

        assert response.status_code == 401
        assert response.json() == {
            "error": "Unauthorized",
            "message": "x-user-id header is required",
        }

    def test_blank_user_header(self, client):
        response = client.post(
            TASKS_URL, json={"title": "A", "description": "B"}, headers=auth_headers("   ")
        )
        assert response.status_code == 401

    def test_missing_header_checked_before_body(self, client):
        response = client.post(TASKS_URL, json={})
        assert response.status_code == 401

    @pytest.mark.parametrize("payload", [
        {"description": "Only description"},
        {"title": "Only title"},
        {"title": "", "description": "B"},
        {"title": "A", "description": ""},
        {"title": "   ", "description": "B", "status": "Done"},
        {},
    ])
    def test_missing_or_empty_fields(self, client, payload):
        response = client.post(TASKS_URL, json=payload, headers=auth_headers(USER_A))

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_invalid_status(self, client):
        response = client.post(
            TASKS_URL,
            json={"title": "A", "description": "B", "status": "Invalid Status"},
            headers=auth_headers(USER_A),
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["message"].startswith("status:")

    def test_title_too_long(self, client):
        response = client.post(
            TASKS_URL,
            json={"title": "x" * 201, "description": "B"},
            headers=auth_headers(USER_A),
        )
        assert response.status_code == 400
        assert "title" in response.json()["message"]

    def test_invalid_json_body(self, client):
        response = client.post(
            TASKS_URL,
            content=b"{not json",
            headers={**auth_headers(USER_A), "content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_owner_comes_from_header_not_body(self, create_task):
        task = create_task(userId=USER_B)
        assert task["userId"] == USER_A

    def test_first_request_provisions_user(self, client, app, create_task):
        create_task(user_id="brand-new-user")
        create_task(user_id="brand-new-user")

        database = app.state.database
        assert database.get_user("brand-new-user") is not None
        cursor = database._connection.cursor()
        cursor.execute("SELECT COUNT(*) FROM users WHERE user_id = 'brand-new-user'")
        assert cursor.fetchone()[0] == 1


class TestListTasks:

    def test_list_only_own_tasks(self, client, create_task):
        for i in range(3):
            create_task(USER_A, title=f"Task {i}")
        create_task(USER_B, title="Other user's task")

        response = client.get(TASKS_URL, headers=auth_headers(USER_A))

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 3
        assert all(task["userId"] == USER_A for task in body["data"])
        assert body["pagination"] == {"page": 1, "limit": 50, "total": 3, "totalPages": 1}

    def test_filter_by_status(self, client, create_task):
        create_task(status="To do")
        create_task(status="In Progress")
        create_task(status="Done")

        response = client.get(
            TASKS_URL, params={"status": "In Progress"}, headers=auth_headers(USER_A)
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data) == 1
        assert data[0]["status"] == "In Progress"

    def test_invalid_status_filter(self, client):
        response = client.get(
            TASKS_URL, params={"status": "Invalid"}, headers=auth_headers(USER_A)
        )

        assert response.status_code == 400
        assert response.json() == {"error": "ValidationError", "message": "Invalid status: Invalid"}

    def test_pagination(self, client, create_task):
        titles = [f"Task {i}" for i in range(5)]
        for title in titles:
            create_task(title=title)

        response = client.get(
            TASKS_URL, params={"page": 2, "limit": 2}, headers=auth_headers(USER_A)
        )

        assert response.status_code == 200
        body = response.json()
        assert [task["title"] for task in body["data"]] == ["Task 2", "Task 1"]
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 5, "totalPages": 3}

    def test_newest_first(self, client, create_task):
        for i in range(3):
            create_task(title=f"Task {i}")

        data = client.get(TASKS_URL, headers=auth_headers(USER_A)).json()["data"]

        assert [task["title"] for task in data] == ["Task 2", "Task 1", "Task 0"]
        created = [task["createdAt"] for task in data]
        assert created == sorted(created, reverse=True)

    def test_limit_clamped(self, client, create_task):
        create_task()

        response = client.get(TASKS_URL, params={"limit": 500}, headers=auth_headers(USER_A))

        assert response.status_code == 200
        assert response.json()["pagination"]["limit"] == 100

    @pytest.mark.parametrize("page", [10**17, 2**63])
    def test_page_far_past_the_end(self, client, create_task, page):
        create_task()

        response = client.get(
            TASKS_URL, params={"page": page, "limit": 100}, headers=auth_headers(USER_A)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"] == []
        assert body["pagination"] == {"page": page, "limit": 100, "total": 1, "totalPages": 1}

    @pytest.mark.parametrize("params", [{"page": "abc"}, {"page": 0}, {"limit": 0}, {"limit": "x"}])
    def test_invalid_pagination_params(self, client, params):
        response = client.get(TASKS_URL, params=params, headers=auth_headers(USER_A))

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_list_without_user_header(self, client):
        response = client.get(TASKS_URL)
        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"


class TestGetTask:

    def test_get_task(self, client, create_task):
        task = create_task()

        response = client.get(f"{TASKS_URL}/{task['_id']}", headers=auth_headers(USER_A))

        assert response.status_code == 200
        assert response.json() == {"data": task}

    def test_missing_task(self, client):
        response = client.get(f"{TASKS_URL}/{new_task_id()}", headers=auth_headers(USER_A))

        assert response.status_code == 404
        assert response.json() == {"error": "NotFound", "message": "Task not found"}

    def test_other_users_task_is_not_found(self, client, create_task):
        task = create_task(USER_A)

        response = client.get(f"{TASKS_URL}/{task['_id']}", headers=auth_headers(USER_B))

        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_malformed_id(self, client):
        response = client.get(f"{TASKS_URL}/invalid-id", headers=auth_headers(USER_A))

        assert response.status_code == 400
        assert response.json() == {
            "error": "ValidationError",
            "message": "Invalid task ID format",
        }


class TestUpdateTask:

    def test_update_status_only(self, client, create_task):
        task = create_task(title="Original Title", description="Original Description")

        response = client.patch(
            f"{TASKS_URL}/{task['_id']}", json={"status": "Done"}, headers=auth_headers(USER_A)
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "Done"
        assert data["title"] == "Original Title"
        assert data["description"] == "Original Description"

    def test_update_title_leaves_other_fields(self, client, create_task):
        task = create_task(status="In Progress")

        response = client.patch(
            f"{TASKS_URL}/{task['_id']}", json={"title": "Renamed"}, headers=auth_headers(USER_A)
        )

        data = response.json()["data"]
        assert data["title"] == "Renamed"
        assert data["description"] == task["description"]
        assert data["status"] == "In Progress"
        assert data["createdAt"] == task["createdAt"]
        assert data["updatedAt"] >= task["updatedAt"]

    def test_empty_update_rejected(self, client, create_task):
        task = create_task()

        response = client.patch(f"{TASKS_URL}/{task['_id']}", json={}, headers=auth_headers(USER_A))

        assert response.status_code == 400
        assert response.json() == {
            "error": "ValidationError",
            "message": "No valid fields provided for update",
        }
        unchanged = client.get(f"{TASKS_URL}/{task['_id']}", headers=auth_headers(USER_A))
        assert unchanged.json()["data"] == task

    def test_invalid_status(self, client, create_task):
        task = create_task()

        response = client.patch(
            f"{TASKS_URL}/{task['_id']}", json={"status": "Nope"}, headers=auth_headers(USER_A)
        )

        assert response.status_code == 400

    def test_null_field_rejected(self, client, create_task):
        task = create_task()

        response = client.patch(
            f"{TASKS_URL}/{task['_id']}", json={"title": None}, headers=auth_headers(USER_A)
        )

        assert response.status_code == 400
        assert "cannot be null" in response.json()["message"]

    def test_update_other_users_task(self, client, create_task):
        task = create_task(USER_A)

        response = client.patch(
            f"{TASKS_URL}/{task['_id']}", json={"title": "Hijacked"}, headers=auth_headers(USER_B)
        )

        assert response.status_code == 404
        still = client.get(f"{TASKS_URL}/{task['_id']}", headers=auth_headers(USER_A))
        assert still.json()["data"]["title"] == task["title"]

    def test_update_missing_task(self, client):
        response = client.patch(
            f"{TASKS_URL}/{new_task_id()}", json={"title": "x"}, headers=auth_headers(USER_A)
        )
        assert response.status_code == 404

    def test_update_malformed_id(self, client):
        response = client.patch(
            f"{TASKS_URL}/invalid-id", json={"title": "x"}, headers=auth_headers(USER_A)
        )
        assert response.status_code == 400

    def test_delete_malformed_id(self, client):
        response = client.delete(f"{TASKS_URL}/invalid-id", headers=auth_headers(USER_A))

        assert response.status_code == 400
        assert response.json() == {"error": "ValidationError", "message": "Invalid task ID format"}


class TestDeleteTask:

    def test_delete_task(self, client, create_task):
        task = create_task()

        response = client.delete(f"{TASKS_URL}/{task['_id']}", headers=auth_headers(USER_A))

        assert response.status_code == 204
        assert response.content == b""
        gone = client.get(f"{TASKS_URL}/{task['_id']}", headers=auth_headers(USER_A))
        assert gone.status_code == 404

    def test_delete_other_users_task(self, client, create_task):
        task = create_task(USER_A)

        response = client.delete(f"{TASKS_URL}/{task['_id']}", headers=auth_headers(USER_B))

        assert response.status_code == 404
        still = client.get(f"{TASKS_URL}/{task['_id']}", headers=auth_headers(USER_A))
        assert still.status_code == 200

    def test_delete_missing_task(self, client):
        response = client.delete(f"{TASKS_URL}/{new_task_id()}", headers=auth_headers(USER_A))
        assert response.status_code == 404

    def test_delete_without_user_header(self, client, create_task):
        task = create_task()
        response = client.delete(f"{TASKS_URL}/{task['_id']}")
        assert response.status_code == 401


class TestTaskLifecycle:

    def test_create_update_delete_get(self, client):
        headers = auth_headers("u1")

        created = client.post(TASKS_URL, json={"title": "A", "description": "B"}, headers=headers)
        assert created.status_code == 201
        task = created.json()["data"]
        assert task["status"] == "To do"
        assert task["userId"] == "u1"

        patched = client.patch(f"{TASKS_URL}/{task['_id']}", json={"status": "Done"}, headers=headers)
        assert patched.status_code == 200
        assert patched.json()["data"]["status"] == "Done"
        assert patched.json()["data"]["title"] == "A"

        deleted = client.delete(f"{TASKS_URL}/{task['_id']}", headers=headers)
        assert deleted.status_code == 204

        fetched = client.get(f"{TASKS_URL}/{task['_id']}", headers=headers)
        assert fetched.status_code == 404


class TestErrorHandling:

    def test_unexpected_error_is_hidden(self, app):
        with patch.object(TaskService, "list_tasks", side_effect=RuntimeError("secret detail")):
            with TestClient(app, raise_server_exceptions=False) as client:
                response = client.get(TASKS_URL, headers=auth_headers(USER_A))

        assert response.status_code == 500
        body = response.json()
        assert body == {"error": "RuntimeError", "message": "An unexpected error occurred"}
        assert "secret detail" not in response.text

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/api/v1/nothing-here", headers=auth_headers(USER_A))

        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_method_not_allowed(self, client):
        response = client.put(TASKS_URL, headers=auth_headers(USER_A))

        assert response.status_code == 405
        assert response.json()["error"] == "MethodNotAllowed"


class TestHealthCheck:

    def test_healthy(self, client):
        response = client.get("/healthz")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database_connected"] is True

    def test_degraded_when_database_fails(self, client, app):
        with patch.object(app.state.database, "ping", side_effect=Exception("disk gone")):
            response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["database_connected"] is False

    def test_lifespan_closes_database(self, app):
        with TestClient(app) as client:
            database = client.app.state.database
            assert database.ping()
        assert database._connection is None
        assert app.state.database is None
