"""FastAPI entrypoint for the Markdown task service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mdtasks.config import AppConfig, ConfigError, load_config
from mdtasks.errors import (
    DuplicateTaskError,
    ErrorResponse,
    RetryExhaustedError,
    StoreConflictError,
    StoreError,
    TaskError,
    TaskNotFoundError,
    TimeConflictError,
    error_response,
)
from mdtasks.logging_setup import setup_logging
from mdtasks.store_git import GitDocumentStore
from mdtasks.store_github import GitHubDocumentStore, parse_github_file_url
from mdtasks.task_persistence import TaskPersistence
from mdtasks.task_router import task_router
from mdtasks.task_store import DocumentIdentity

# Import to register routes with the shared router.
from mdtasks import task_endpoints  # noqa: F401

logger = logging.getLogger(__name__)

SERVICE_TOKEN_HEADER = "X-Mdtasks-Service-Token"
AUTH_EXEMPT_PATHS = {"/health"}


def error_status(exc: TaskError) -> int:
    if isinstance(exc, TaskNotFoundError):
        return 404
    if isinstance(
        exc,
        (StoreConflictError, RetryExhaustedError, TimeConflictError, DuplicateTaskError),
    ):
        return 409
    if isinstance(exc, StoreError):
        return 502
    return 400


def build_persistence(config: AppConfig) -> TaskPersistence:
    """Choose the document store from config and wrap it for the endpoints."""
    if config.store_kind == "github":
        try:
            location = parse_github_file_url(config.file_url or "")
        except ValueError as exc:
            raise ConfigError(f"MDTASKS_FILE_URL is invalid: {exc}") from None
        store = GitHubDocumentStore(
            location.owner,
            location.repo,
            config.github_token or "",
            timeout=config.http_timeout_seconds,
        )
        identity = location.identity
    else:
        store = GitDocumentStore(config.repo_path)
        identity = DocumentIdentity(path=config.file_path)

    logger.info("Using %s store for %s", config.store_kind, identity.path)
    return TaskPersistence(
        store,
        identity,
        default_timezone=config.default_timezone,
        max_attempts=config.save_attempts,
        backoff_seconds=config.retry_backoff_seconds,
    )


def create_app(
    persistence: TaskPersistence | None = None,
    config: AppConfig | None = None,
) -> FastAPI:
    """Build the app; `persistence` and `config` are injected by tests."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if persistence is not None:
            app.state.config = config
            app.state.persistence = persistence
            yield
            return

        loaded = config or load_config()
        setup_logging(level=loaded.log_level, log_dir=loaded.log_dir)
        app.state.config = loaded
        app.state.persistence = build_persistence(loaded)
        try:
            yield
        finally:
            close = getattr(app.state.persistence.store, "close", None)
            if close is not None:
                close()

    app = FastAPI(lifespan=lifespan)

    @app.middleware("http")
    async def enforce_service_token(request: Request, call_next):
        if request.url.path in AUTH_EXEMPT_PATHS:
            return await call_next(request)

        config = getattr(request.app.state, "config", None)
        service_token = getattr(config, "service_token", None)
        if service_token:
            supplied_token = request.headers.get(SERVICE_TOKEN_HEADER)
            if supplied_token != service_token:
                error = ErrorResponse(
                    code="AUTH_FORBIDDEN",
                    message="Invalid service token.",
                    details={"header": SERVICE_TOKEN_HEADER},
                )
                return JSONResponse(status_code=403, content=error_response(error))

        return await call_next(request)

    @app.exception_handler(TaskError)
    def handle_task_error(request: Request, exc: TaskError) -> JSONResponse:
        status_code = error_status(exc)
        if status_code >= 500:
            logger.error("%s failed: %s", request.url.path, exc)
        else:
            logger.info("%s rejected: %s", request.url.path, exc.error.code)
        return JSONResponse(status_code=status_code, content=error_response(exc.error))

    @app.get("/health", status_code=200)
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(task_router)
    return app


app = create_app()
