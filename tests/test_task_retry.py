import pytest

from fakes import SleepRecorder
from mdtasks.errors import RetryExhaustedError, StoreConflictError, StoreError
from mdtasks.task_retry import write_with_retry


class ScriptedWrite:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.tokens = []

    def __call__(self, token):
        self.tokens.append(token)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_retries_with_refreshed_token_until_success():
    write = ScriptedWrite(
        [StoreConflictError("stale"), StoreConflictError("stale"), "new-token"]
    )
    fresh_tokens = iter(["t2", "t3"])
    sleep = SleepRecorder()

    result = write_with_retry(
        write, lambda: next(fresh_tokens), token="t1", attempts=3, sleep=sleep
    )

    assert result == "new-token"
    assert write.tokens == ["t1", "t2", "t3"]
    assert sleep.calls == [1.0, 2.0]


def test_exhaustion_names_attempts_and_chains_conflict():
    write = ScriptedWrite([StoreConflictError("stale")] * 2)
    sleep = SleepRecorder()

    with pytest.raises(RetryExhaustedError) as excinfo:
        write_with_retry(
            write,
            lambda: "fresh",
            token="t1",
            attempts=2,
            backoff_seconds=0.5,
            sleep=sleep,
            operation="save tasks",
        )

    error = excinfo.value
    assert "after 2 attempts" in str(error)
    assert error.error.details == {"operation": "save tasks", "attempts": 2}
    assert isinstance(error.__cause__, StoreConflictError)
    assert sleep.calls == [0.5]


def test_non_conflict_errors_are_not_retried():
    write = ScriptedWrite([StoreError("boom"), "unused"])
    sleep = SleepRecorder()

    with pytest.raises(StoreError) as excinfo:
        write_with_retry(write, lambda: "fresh", token=None, sleep=sleep)

    assert not isinstance(excinfo.value, RetryExhaustedError)
    assert write.tokens == [None]
    assert sleep.calls == []


def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        write_with_retry(lambda token: token, lambda: None, token=None, attempts=0)
