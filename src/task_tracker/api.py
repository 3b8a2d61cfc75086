"""
FastAPI Backend for the Task Tracker

Provides the versioned REST endpoints for per-user task records, the health
check, and the exception handlers that turn every failure into the uniform
``{error, message}`` envelope. The TaskDatabase is opened in the lifespan
and injected into routes; nothing here holds it in a module global.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import get_current_user
from .database import TaskDatabase, utc_now_str
from .dependencies import get_database, get_task_service
from .errors import TaskTrackerError
from .models import (
    ErrorResponse,
    HealthResponse,
    Pagination,
    Task,
    TaskCreate,
    TaskListResponse,
    TaskResponse,
    TaskUpdate,
)
from .service import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, TaskService

# Configure logging for API operations
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "info").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "task_tracker.db"
API_PREFIX = "/api/v1"
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"

HTTP_ERROR_LABELS = {
    400: "ValidationError",
    401: "Unauthorized",
    404: "NotFound",
    405: "MethodNotAllowed",
    503: "ServiceUnavailable",
}

ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    401: {"model": ErrorResponse, "description": "Missing x-user-id header"},
}


def format_validation_errors(errors: List[Dict[str, Any]]) -> str:
    """
    Flatten pydantic/FastAPI validation errors into one message.

    Each entry becomes ``"<field>: <reason>"``; the request section prefix
    (body, query, path) is dropped from the field location.
    """
    parts = []
    for error in errors:
        if error.get("type") == "json_invalid":
            parts.append("Request body is not valid JSON")
            continue
        loc = [str(item) for item in error.get("loc", ())]
        if len(loc) > 1 and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        field = ".".join(loc) or "request"
        parts.append(f"{field}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts) or "Invalid request"


def _task_response(task: Dict[str, Any]) -> TaskResponse:
    return TaskResponse(data=Task(**task))


router = APIRouter(prefix=API_PREFIX, tags=["tasks"], responses=ERROR_RESPONSES)


@router.get("/tasks", response_model=TaskListResponse)
async def list_tasks(
    status: Optional[str] = Query(None, description="Filter by task status"),
    page: int = Query(DEFAULT_PAGE, description="1-based page number"),
    limit: int = Query(DEFAULT_PAGE_SIZE, description="Page size (max 100)"),
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """
    List the caller's tasks, newest first, one page at a time.

    Returns:
        TaskListResponse: Page of tasks plus page/limit/total/totalPages
    """
    result = service.list_tasks(user_id, status=status, page=page, limit=limit)
    return TaskListResponse(
        data=[Task(**task) for task in result["data"]],
        pagination=Pagination(**result["pagination"]),
    )


@router.get(
    "/tasks/{task_id}",
    response_model=TaskResponse,
    responses={404: {"model": ErrorResponse, "description": "Task not found"}},
)
async def get_task(
    task_id: str,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Fetch one of the caller's tasks by id."""
    return _task_response(service.get_task(user_id, task_id))


@router.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(
    payload: TaskCreate,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Create a task owned by the caller. Status defaults to "To do"."""
    return _task_response(service.create_task(user_id, payload))


@router.patch(
    "/tasks/{task_id}",
    response_model=TaskResponse,
    responses={404: {"model": ErrorResponse, "description": "Task not found"}},
)
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """
    Partially update one of the caller's tasks.

    Only title, description and status present in the body are written.
    An empty body is rejected.
    """
    return _task_response(service.update_task(user_id, task_id, payload))


@router.delete(
    "/tasks/{task_id}",
    status_code=204,
    response_class=Response,
    responses={404: {"model": ErrorResponse, "description": "Task not found"}},
)
async def delete_task(
    task_id: str,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Permanently delete one of the caller's tasks."""
    service.delete_task(user_id, task_id)
    return Response(status_code=204)


def register_exception_handlers(app: FastAPI) -> None:
    """Map every failure to the ``{error, message}`` envelope."""

    @app.exception_handler(TaskTrackerError)
    async def task_tracker_error_handler(request: Request, exc: TaskTrackerError):
        logger.warning(
            f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}: {exc.message}"
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        message = format_validation_errors(exc.errors())
        logger.warning(f"{request.method} {request.url.path} -> 400 ValidationError: {message}")
        return JSONResponse(
            status_code=400,
            content={"error": "ValidationError", "message": message},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": HTTP_ERROR_LABELS.get(exc.status_code, "HTTPError"),
                "message": str(exc.detail),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: {exc}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": type(exc).__name__ or "InternalError",
                "message": UNEXPECTED_ERROR_MESSAGE,
            },
        )


def create_app(database_path: Optional[str] = None) -> FastAPI:
    """
    Build the Task Tracker application.

    Args:
        database_path: SQLite file to open at startup. Falls back to the
            DATABASE_PATH environment variable, read when the app starts.

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the shared database on startup and close it on shutdown."""
        db_path = database_path or os.getenv("DATABASE_PATH", DEFAULT_DB_PATH)
        try:
            app.state.database = TaskDatabase(db_path)
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

        logger.info("Task Tracker API starting up...")
        logger.info(f"  GET|POST {API_PREFIX}/tasks")
        logger.info(f"  GET|PATCH|DELETE {API_PREFIX}/tasks/{{id}}")
        logger.info("  GET /healthz")

        yield

        database = getattr(app.state, "database", None)
        if database is not None:
            database.close()
            app.state.database = None
            logger.info("Database connection closed")

    app = FastAPI(
        title="Task Tracker API",
        description="Per-user task records with ownership isolation",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz", response_model=HealthResponse)
    async def health_check(db: TaskDatabase = Depends(get_database)):
        """
        Health check endpoint for service monitoring.

        Reports "degraded" instead of failing when the database query errors,
        so load balancers can tell a live process from a broken store.
        """
        try:
            database_connected = db.ping()
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            database_connected = False

        return HealthResponse(
            status="healthy" if database_connected else "degraded",
            database_connected=database_connected,
            timestamp=utc_now_str(),
        )

    app.include_router(router)
    register_exception_handlers(app)
    return app


app = create_app()
