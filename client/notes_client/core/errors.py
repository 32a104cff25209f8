"""Typed failures raised by the client state layer.

Every failure path ends in one of these. Validation problems are detected
locally and never reach the network; everything else is translated from the
transport at the store boundary.
"""
from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Machine-readable error identification."""

    VALIDATION_FAILED = 1001
    FIELD_REQUIRED = 1002
    INVALID_PATH = 1003
    CONFLICT = 2001
    NOT_FOUND = 3001
    TRANSPORT_FAILED = 4001
    AUTH_REJECTED = 5001
    REMOTE_FAILED = 6001


class NotesError(Exception):
    """Base exception for all client state errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    default_code = ErrorCode.VALIDATION_FAILED

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for display or serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ValidationError(NotesError, ValueError):
    """Local, pre-network rejection of an input."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        if field:
            merged["field"] = field
        super().__init__(message, code=code, details=merged)
        self.field = field


class ConflictError(ValidationError):
    """The target path or record already exists."""

    default_code = ErrorCode.CONFLICT


class NotFoundError(NotesError):
    """The targeted path or id is no longer present."""

    default_code = ErrorCode.NOT_FOUND


class TransportError(NotesError):
    """No response was received from the remote store."""

    default_code = ErrorCode.TRANSPORT_FAILED


class AuthError(NotesError):
    """The remote store rejected the session credential."""

    default_code = ErrorCode.AUTH_REJECTED


class RemoteError(NotesError):
    """The remote store answered with a failure message."""

    default_code = ErrorCode.REMOTE_FAILED

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        errors: list[Any] | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if errors:
            details["errors"] = errors
        super().__init__(message, details=details)
        self.status_code = status_code
        self.errors = errors or []
