"""
Base exception classes for application-wide error handling.

This module provides the exception hierarchy raised by repositories and
services. Each class carries:
- A machine-readable error code for clients
- The HTTP status the API layer renders it with
- Optional details (field errors, lookup keys)

Exception Hierarchy:
    BaseApplicationError (base, 500)
    ├── ValidationError - Input or constraint violations (400)
    ├── NotFoundError - Entity absent (404)
    └── ConflictError - State conflicts such as duplicate numbers (409)

Usage:
    from core.exceptions import NotFoundError, ValidationError

    raise ValidationError("Name must not be blank", error_code="INVALID_NAME")

    raise NotFoundError(
        "Application not found",
        error_code="APPLICATION_NOT_FOUND",
        details={"token": token},
    )

Note:
    Views never catch these. core.exception_handler renders them
    with e.to_dict() and e.http_status.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, lookup keys)
        http_status: Status code used when rendered by the API
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Chat not found",
                "error_code": "CHAT_NOT_FOUND",
                "details": {"number": 3}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for:
    - Blank application names or message bodies
    - Length bounds (application name is 3 to 50 characters)
    - Unsupported query parameters (sortBy, search mode)

    Note:
        DRF serializers validate request shape first. The repositories
        re-check the same constraints so that non-HTTP callers (tasks,
        shell) get the same guarantees.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested entity is not found.

    Example:
        raise NotFoundError(
            f"Chat {number} not found",
            error_code="CHAT_NOT_FOUND",
            details={"token": token, "number": number},
        )
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current state.

    Use for unique constraint violations that escape the sequence lock,
    e.g. a chat number inserted outside of the repository.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409
