"""
Task Database Layer with Owner-Scoped Queries

Provides SQLite-based storage for tasks and user identities. Runs in WAL mode
on a single shared connection guarded by a re-entrant lock. Every task query
takes the owning user id as a filter, so callers can never read or mutate
another user's records through this class.
"""

import logging
import re
import secrets
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import InvalidTaskIdError
from .models import TaskStatus

logger = logging.getLogger(__name__)

# Task ids are 12 random bytes rendered as 24 lowercase hex characters
TASK_ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")

TASK_COLUMNS = "id, title, description, status, user_id, created_at, updated_at"
UPDATABLE_FIELDS = ("title", "description", "status")


def utc_now_str() -> str:
    """Current UTC time as a sortable ISO-8601 string with microseconds."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def new_task_id() -> str:
    return secrets.token_hex(12)


def validate_task_id(task_id: str) -> str:
    """
    Check a task identifier against the store's id format.

    Raises:
        InvalidTaskIdError: If the identifier is not 24 lowercase hex characters
    """
    if not isinstance(task_id, str) or not TASK_ID_PATTERN.match(task_id):
        raise InvalidTaskIdError()
    return task_id


class TaskDatabase:
    """
    SQLite store for user-owned tasks.

    Features:
    - WAL mode for concurrent read/write access
    - Thread-safe operations over one shared connection
    - Uniqueness constraint on user ids for race-free lazy provisioning
    - Owner filter on every task read, update and delete
    """

    def __init__(self, db_path: str):
        """
        Initialize TaskDatabase with SQLite WAL mode configuration.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._connection_lock = threading.RLock()
        self._connection: Optional[sqlite3.Connection] = None

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_database()

    def _initialize_database(self) -> None:
        """Open the connection, configure pragmas and create the schema."""
        try:
            self._connection = sqlite3.connect(
                str(self.db_path),
                isolation_level=None,  # Autocommit mode
                check_same_thread=False,
            )
            cursor = self._connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            self._create_schema()
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to initialize database at {self.db_path}: {e}")
        logger.info(f"Task database ready: {self.db_path}")

    def _create_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        cursor = self._connection.cursor()
        status_values = ", ".join(f"'{value}'" for value in TaskStatus.values())

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT '{TaskStatus.TODO.value}',
                user_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                CONSTRAINT status_vocabulary CHECK (status IN ({status_values}))
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_tasks_user_id
            ON tasks (user_id)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_tasks_user_status
            ON tasks (user_id, status)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_tasks_user_created
            ON tasks (user_id, created_at DESC)
        """)

    @contextmanager
    def _transaction(self):
        """Context manager for explicit transaction control."""
        with self._connection_lock:
            cursor = self._connection.cursor()
            cursor.execute("BEGIN")
            try:
                yield cursor
                cursor.execute("COMMIT")
            except Exception:
                cursor.execute("ROLLBACK")
                raise

    @staticmethod
    def _row_to_task(row) -> Dict[str, Any]:
        return {
            "id": row[0],
            "title": row[1],
            "description": row[2],
            "status": row[3],
            "user_id": row[4],
            "created_at": row[5],
            "updated_at": row[6],
        }

    def ping(self) -> bool:
        """Run a trivial query to verify the connection is usable."""
        with self._connection_lock:
            cursor = self._connection.cursor()
            cursor.execute("SELECT 1")
            return cursor.fetchone()[0] == 1

    # Identity records

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Look up an identity record by token."""
        with self._connection_lock:
            cursor = self._connection.cursor()
            cursor.execute(
                "SELECT user_id, created_at FROM users WHERE user_id = ?", (user_id,)
            )
            row = cursor.fetchone()
            if not row:
                return None
            return {"user_id": row[0], "created_at": row[1]}

    def create_user(self, user_id: str) -> Dict[str, Any]:
        """
        Insert an identity record.

        Raises:
            sqlite3.IntegrityError: If a record with this token already exists
        """
        created_at = utc_now_str()
        with self._connection_lock:
            cursor = self._connection.cursor()
            cursor.execute(
                "INSERT INTO users (user_id, created_at) VALUES (?, ?)",
                (user_id, created_at),
            )
        return {"user_id": user_id, "created_at": created_at}

    def ensure_user(self, user_id: str) -> bool:
        """
        Make sure an identity record exists for the token.

        A uniqueness violation on insert means another request provisioned
        the same token first, which counts as success.

        Returns:
            True if this call created the record, False if it already existed
        """
        if self.get_user(user_id) is not None:
            return False
        try:
            self.create_user(user_id)
        except sqlite3.IntegrityError:
            logger.debug(f"User {user_id} provisioned concurrently")
            return False
        return True

    # Tasks

    def list_tasks(
        self,
        user_id: str,
        status: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """
        Fetch one page of a user's tasks plus the unpaginated match count.

        Both queries run in the same read transaction so the page and the
        total describe one snapshot.

        Args:
            user_id: Owning user token
            status: Optional status filter
            offset: Number of matching tasks to skip
            limit: Maximum number of tasks to return

        Returns:
            Dict with ``tasks`` (newest first) and ``total``
        """
        conditions = ["user_id = ?"]
        params: List[Any] = [user_id]
        if status is not None:
            conditions.append("status = ?")
            params.append(status)
        where = " AND ".join(conditions)

        with self._transaction() as cursor:
            cursor.execute(
                f"""
                SELECT {TASK_COLUMNS}
                FROM tasks
                WHERE {where}
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                params + [limit, offset],
            )
            rows = cursor.fetchall()
            cursor.execute(f"SELECT COUNT(*) FROM tasks WHERE {where}", params)
            total = cursor.fetchone()[0]

        return {"tasks": [self._row_to_task(row) for row in rows], "total": total}

    def get_task(self, task_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a task by id, only if owned by ``user_id``."""
        validate_task_id(task_id)
        with self._connection_lock:
            cursor = self._connection.cursor()
            cursor.execute(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ? AND user_id = ?",
                (task_id, user_id),
            )
            row = cursor.fetchone()
            return self._row_to_task(row) if row else None

    def create_task(
        self, user_id: str, title: str, description: str, status: str = TaskStatus.TODO.value
    ) -> Dict[str, Any]:
        """
        Create a new task owned by ``user_id``.

        Returns:
            The stored task record
        """
        task_id = new_task_id()
        now = utc_now_str()
        with self._connection_lock:
            cursor = self._connection.cursor()
            cursor.execute(
                f"""
                INSERT INTO tasks ({TASK_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (task_id, title, description, status, user_id, now, now),
            )
        return {
            "id": task_id,
            "title": title,
            "description": description,
            "status": status,
            "user_id": user_id,
            "created_at": now,
            "updated_at": now,
        }

    def update_task(
        self, task_id: str, user_id: str, changes: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Apply a partial update to an owned task.

        Args:
            task_id: Task to update
            user_id: Owning user token
            changes: Column values to overwrite; keys outside title,
                description and status are ignored

        Returns:
            The post-update record, or None if no owned task matched
        """
        validate_task_id(task_id)
        fields = [name for name in UPDATABLE_FIELDS if name in changes]
        if not fields:
            raise ValueError("update_task requires at least one field")

        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [changes[name] for name in fields]
        params += [utc_now_str(), task_id, user_id]

        with self._transaction() as cursor:
            cursor.execute(
                f"UPDATE tasks SET {assignments}, updated_at = ? WHERE id = ? AND user_id = ?",
                params,
            )
            if cursor.rowcount == 0:
                return None
            cursor.execute(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ? AND user_id = ?",
                (task_id, user_id),
            )
            return self._row_to_task(cursor.fetchone())

    def delete_task(self, task_id: str, user_id: str) -> bool:
        """
        Permanently delete an owned task.

        Returns:
            True if a task was removed, False if no owned task matched
        """
        validate_task_id(task_id)
        with self._connection_lock:
            cursor = self._connection.cursor()
            cursor.execute(
                "DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            )
            return cursor.rowcount > 0

    def close(self):
        """Close database connection."""
        with self._connection_lock:
            if self._connection:
                self._connection.close()
                self._connection = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
