"""Optimistic-concurrency write loop, independent of the document format."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from mdtasks.errors import RetryExhaustedError, StoreConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def write_with_retry(
    write: Callable[[str | None], T],
    refresh_token: Callable[[], str | None],
    *,
    token: str | None,
    attempts: int = 3,
    backoff_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "write",
) -> T:
    """Attempt `write(token)`; on a stale token refetch it and try again.

    Backoff grows linearly with the attempt number. Only
    `StoreConflictError` is retried; anything else propagates untouched.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            return write(token)
        except StoreConflictError as exc:
            if attempt >= attempts:
                logger.error(
                    "%s: conflict on attempt %d/%d; giving up", operation, attempt, attempts
                )
                raise RetryExhaustedError(
                    f"Failed to {operation} after {attempts} attempts: "
                    "the document kept changing underneath.",
                    {"operation": operation, "attempts": attempts},
                ) from exc
            logger.warning(
                "%s: conflict on attempt %d/%d; retrying", operation, attempt, attempts
            )
            sleep(backoff_seconds * attempt)
            token = refresh_token()

    raise AssertionError("unreachable")
