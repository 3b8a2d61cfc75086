"""
Shared fixtures for Task Tracker tests.

Provides an isolated SQLite database per test and a TestClient bound to an
application that opens that database through its lifespan.
"""

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

project_root = Path(__file__).parent.parent.parent / "src"
sys.path.insert(0, str(project_root))

from task_tracker.api import create_app
from task_tracker.database import TaskDatabase

USER_A = "test-user-123"
USER_B = "other-user-456"


def auth_headers(user_id: str) -> dict:
    return {"x-user-id": user_id}


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test_task_tracker.db")


@pytest.fixture
def database(db_path):
    db = TaskDatabase(db_path)
    yield db
    db.close()


@pytest.fixture
def app(db_path):
    return create_app(db_path)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def create_task(client):
    """Create a task over HTTP and return its JSON record."""

    def _create(user_id: str = USER_A, **fields):
        payload = {"title": "Test Task", "description": "This is a test task"}
        payload.update(fields)
        response = client.post("/api/v1/tasks", json=payload, headers=auth_headers(user_id))
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create
