"""Error taxonomy for API operations.

Every error is an HTTPException carrying a human-readable message as detail;
the app factory renders it as ``{"message": detail}``. All of them end the
current request; nothing is retried.
"""

from __future__ import annotations

from fastapi import HTTPException

GENERIC_SERVER_ERROR = "服务器内部错误"


class ApiError(HTTPException):
    """Base class: a status code plus a fixed message."""

    status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(status_code=self.status, detail=message)

    @property
    def message(self) -> str:
        return self.detail


class BadRequest(ApiError):
    status = 400


class Unauthenticated(ApiError):
    status = 401

    def __init__(self, message: str = "未授权") -> None:
        super().__init__(message)


class Forbidden(ApiError):
    status = 403


class NotFound(ApiError):
    status = 404


class Conflict(ApiError):
    status = 409


class StoreFailure(ApiError):
    """A store call unexpectedly returned no row.

    The message is generic; store error detail is never echoed back.
    """

    status = 500
