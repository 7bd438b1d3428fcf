"""
JSON error rendering shared by the exception handlers and routers.
"""

from typing import TypeVar

from fastapi.responses import JSONResponse

from crewboard.services.operations import OperationError, OperationResult

T = TypeVar("T")


class OperationFailed(Exception):
    """Raised by routers to turn a failed OperationResult into an HTTP response."""

    def __init__(self, error: OperationError):
        self.error = error
        super().__init__(error.message)


def error_response(code: str, detail: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": code, "detail": detail}, status_code=status_code)


def unwrap(result: OperationResult[T]) -> T:
    """Return the value of a successful result, raise OperationFailed otherwise."""
    if not result.ok:
        raise OperationFailed(result.error)
    return result.value
