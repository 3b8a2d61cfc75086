"""FastAPI dependencies that hand the shared store to request handlers."""

from fastapi import Depends, HTTPException, Request

from .database import TaskDatabase
from .service import TaskService


def get_database(request: Request) -> TaskDatabase:
    """
    FastAPI dependency to provide the database opened by the app lifespan.

    Raises:
        HTTPException: 503 if the application has no open database
    """
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return database


def get_task_service(db: TaskDatabase = Depends(get_database)) -> TaskService:
    return TaskService(db)
