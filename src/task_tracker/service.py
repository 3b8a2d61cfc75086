"""
Task query/command layer.

Implements the five task operations on top of TaskDatabase. Every operation
takes the resolved user token and scopes its query to it; a task owned by
someone else is reported exactly like a missing one.
"""

import logging
import math
from typing import Any, Dict, Optional

from .database import TaskDatabase
from .errors import NotFoundError, ValidationError
from .models import TaskCreate, TaskStatus, TaskUpdate

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
# SQLite binds integers as signed 64-bit
MAX_OFFSET = 2**63 - 1

TASK_NOT_FOUND = "Task not found"


class TaskService:
    """Owner-scoped task operations."""

    def __init__(self, database: TaskDatabase):
        self.db = database

    def list_tasks(
        self,
        user_id: str,
        status: Optional[str] = None,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """
        List one page of the user's tasks, newest first.

        Args:
            user_id: Resolved identity token
            status: Optional status filter; must be a valid TaskStatus value
            page: 1-based page number
            limit: Page size, clamped to MAX_PAGE_SIZE

        Returns:
            Dict with ``data`` (task records) and ``pagination`` metadata

        Raises:
            ValidationError: For an unknown status or non-positive page/limit
        """
        if status is not None and status not in TaskStatus.values():
            raise ValidationError(f"Invalid status: {status}")
        if page < 1:
            raise ValidationError("page must be a positive integer")
        if limit < 1:
            raise ValidationError("limit must be a positive integer")
        limit = min(limit, MAX_PAGE_SIZE)

        offset = min((page - 1) * limit, MAX_OFFSET)
        result = self.db.list_tasks(user_id, status=status, offset=offset, limit=limit)
        total = result["total"]

        logger.debug(
            f"Listed {len(result['tasks'])}/{total} tasks for user {user_id} "
            f"(status={status}, page={page}, limit={limit})"
        )
        return {
            "data": result["tasks"],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
        }

    def get_task(self, user_id: str, task_id: str) -> Dict[str, Any]:
        task = self.db.get_task(task_id, user_id)
        if task is None:
            raise NotFoundError(TASK_NOT_FOUND)
        return task

    def create_task(self, user_id: str, payload: TaskCreate) -> Dict[str, Any]:
        """Create a task owned by ``user_id`` from a validated payload."""
        task = self.db.create_task(
            user_id,
            title=payload.title,
            description=payload.description,
            status=payload.status.value,
        )
        logger.info(f"Task {task['id']} created by user {user_id}")
        return task

    def update_task(self, user_id: str, task_id: str, payload: TaskUpdate) -> Dict[str, Any]:
        """
        Apply the fields present in ``payload`` to an owned task.

        Raises:
            ValidationError: If the payload carries no fields
            NotFoundError: If no owned task has this id
        """
        changes = payload.changes()
        if not changes:
            raise ValidationError("No valid fields provided for update")

        task = self.db.update_task(task_id, user_id, changes)
        if task is None:
            raise NotFoundError(TASK_NOT_FOUND)
        logger.info(f"Task {task_id} updated by user {user_id}: {sorted(changes)}")
        return task

    def delete_task(self, user_id: str, task_id: str) -> None:
        if not self.db.delete_task(task_id, user_id):
            raise NotFoundError(TASK_NOT_FOUND)
        logger.info(f"Task {task_id} deleted by user {user_id}")
