"""Fetch, validate and compare-and-swap save of the task document."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from mdtasks.errors import DocumentNotFoundError, StoreConflictError, TaskValidationError
from mdtasks.task_codec import DecodedDocument, decode, encode
from mdtasks.task_constants import (
    DEFAULT_TIMEZONE,
    INIT_COMMIT_MESSAGE,
    UPDATE_COMMIT_PREFIX,
)
from mdtasks.task_models import Metadata, TaskData
from mdtasks.task_retry import write_with_retry
from mdtasks.task_store import DocumentIdentity, DocumentStore, StoredDocument
from mdtasks.task_validation import collect_invalid_tasks, validate_task

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


@dataclass
class TaskSnapshot:
    """One read of the document: decoded state plus its content token."""

    metadata: Metadata
    task_data: TaskData
    token: str | None


class TaskPersistence:
    """Per-call read/modify/write coordinator for the task document.

    Nothing is cached between calls; every query re-reads the store so
    concurrent writers are always seen.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: DocumentIdentity,
        *,
        default_timezone: str = DEFAULT_TIMEZONE,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._identity = identity
        self._default_timezone = default_timezone
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._clock = clock

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def identity(self) -> DocumentIdentity:
        return self._identity

    def initial_content(self) -> str:
        metadata = Metadata(
            last_synced=format_timestamp(self._clock()),
            timezone=self._default_timezone,
        )
        return encode(TaskData(), metadata)

    def _initialize(self) -> StoredDocument:
        content = self.initial_content()
        try:
            token = self._store.put(self._identity, content, None, INIT_COMMIT_MESSAGE)
        except StoreConflictError:
            logger.info(
                "Task document %s was created concurrently; re-reading",
                self._identity.path,
            )
            return self._store.get(self._identity)
        logger.info("Created initial task document at %s", self._identity.path)
        return StoredDocument(content=content, token=token)

    def fetch_document(self) -> StoredDocument:
        try:
            return self._store.get(self._identity)
        except DocumentNotFoundError:
            logger.info("Task document %s not found; initializing", self._identity.path)
            return self._initialize()

    def _current_token(self) -> str | None:
        try:
            return self._store.get(self._identity).token
        except DocumentNotFoundError:
            return None

    def query_tasks(self) -> TaskSnapshot:
        stored = self.fetch_document()
        decoded = decode(stored.content)
        log_parse_issues(decoded, self._identity.path)

        for index, task in enumerate(decoded.tasks):
            result = validate_task(task)
            if not result.valid:
                logger.warning(
                    "Task at index %d (%r) has validation errors: %s",
                    index,
                    task.name,
                    ", ".join(result.errors),
                )
            for warning in result.warnings:
                logger.info("Task %r: %s", task.name, warning)

        return TaskSnapshot(
            metadata=decoded.metadata,
            task_data=decoded.task_data,
            token=stored.token,
        )

    def save_tasks(
        self,
        task_data: TaskData,
        metadata: Metadata,
        token: str | None = None,
    ) -> str:
        """Validate, encode and write the document; return the new token.

        `token` is the content token from the read this save is based on;
        when omitted the current token is fetched first.
        """
        invalid = collect_invalid_tasks(task_data.uncompleted)
        if invalid:
            for item in invalid:
                logger.error(
                    "Task at index %d (%r) is invalid: %s",
                    item["index"],
                    item["name"],
                    ", ".join(item["errors"]),
                )
            raise TaskValidationError(
                f"Cannot save tasks: {len(invalid)} task(s) are invalid.",
                {"tasks": invalid},
            )

        metadata.tags = sorted(
            {tag for task in task_data.uncompleted for tag in task.tags}
        )
        if not metadata.timezone:
            metadata.timezone = self._default_timezone
        metadata.last_synced = format_timestamp(self._clock())
        metadata.total_tasks = len(task_data.uncompleted)

        content = encode(task_data, metadata)
        message = f"{UPDATE_COMMIT_PREFIX}{metadata.last_synced}"
        if token is None:
            token = self._current_token()

        new_token = write_with_retry(
            lambda current: self._store.put(self._identity, content, current, message),
            self._current_token,
            token=token,
            attempts=self._max_attempts,
            backoff_seconds=self._backoff_seconds,
            sleep=self._sleep,
            operation="save tasks",
        )
        logger.info(
            "Saved %d open and %d completed task(s) to %s",
            len(task_data.uncompleted),
            len(task_data.completed),
            self._identity.path,
        )
        return new_token


def log_parse_issues(document: DecodedDocument, source: str) -> None:
    for issue in document.issues:
        logger.warning("%s line %d: %s", source, issue.line_number, issue.message)
