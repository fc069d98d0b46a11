from mdtasks.errors import (
    ErrorResponse,
    RetryExhaustedError,
    StoreError,
    TaskError,
    TimeConflictError,
    error_response,
    success_response,
)


def test_error_response_serializes_details():
    error = ErrorResponse(code="TIME_CONFLICT", message="Nope", details={"name": "A"})

    assert error.to_dict() == {
        "code": "TIME_CONFLICT",
        "message": "Nope",
        "details": {"name": "A"},
    }


def test_task_error_defaults_details():
    exc = TaskError("Bad payload", code="INVALID_TYPE")

    assert exc.error.to_dict() == {
        "code": "INVALID_TYPE",
        "message": "Bad payload",
        "details": {},
    }


def test_subclasses_carry_their_code():
    assert TimeConflictError("overlap").error.code == "TIME_CONFLICT"
    exhausted = RetryExhaustedError("gave up", {"attempts": 3})
    assert isinstance(exhausted, StoreError)
    assert exhausted.error.code == "RETRY_EXHAUSTED"


def test_envelopes():
    assert success_response({"x": 1}) == {"ok": True, "data": {"x": 1}}
    error = ErrorResponse(code="E", message="m")
    assert error_response(error) == {
        "ok": False,
        "error": {"code": "E", "message": "m", "details": {}},
    }
