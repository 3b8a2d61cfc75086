"""
Pydantic models for Task Tracker API request/response validation.

Provides the task status vocabulary, request bodies for create and update
operations, and the response envelopes returned by the task endpoints.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000


class TaskStatus(str, Enum):
    """Task lifecycle states. The values are the exact wire literals."""

    TODO = "To do"
    IN_PROGRESS = "In Progress"
    DONE = "Done"
    ARCHIVED = "Archived"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class TaskCreate(BaseModel):
    """Request model for creating a task."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH, description="Task title")
    description: str = Field(
        min_length=1, max_length=DESCRIPTION_MAX_LENGTH, description="Task description"
    )
    status: TaskStatus = Field(TaskStatus.TODO, description="Initial lifecycle state")


class TaskUpdate(BaseModel):
    """
    Request model for partial task updates.

    Only fields present in the request body are applied; ``model_fields_set``
    tells them apart from defaults. Explicit nulls are rejected.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    status: Optional[TaskStatus] = None

    @field_validator("title", "description", "status")
    @classmethod
    def reject_null(cls, v, info):
        """Reject fields sent explicitly as null."""
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    def changes(self) -> dict:
        """Return the provided fields as plain column values."""
        return self.model_dump(exclude_unset=True, mode="json")


class Task(BaseModel):
    """Task record as it appears on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    title: str
    description: str
    status: TaskStatus
    user_id: str = Field(alias="userId")
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")


class Pagination(BaseModel):
    """Pagination metadata for list responses."""

    page: int
    limit: int
    total: int
    totalPages: int


class TaskResponse(BaseModel):
    """Envelope for a single task."""

    data: Task


class TaskListResponse(BaseModel):
    """Envelope for one page of tasks."""

    data: List[Task]
    pagination: Pagination


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    message: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    database_connected: bool
    timestamp: str
