"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Result wrapper for operations whose failure is expected
  and must not abort the caller (per-key aggregation commits, indexing)
- BaseService: Base class with logging and transaction helpers

Service Layer Philosophy:
    Services encapsulate business logic separate from views and models.
    Views handle HTTP concerns, repositories handle data, services
    orchestrate repositories, caches, queues and the search index.

Pattern Comparison:
    - Exceptions (core.exceptions): request-path failures the client must
      see (not found, validation). The DRF exception handler renders them.
    - ServiceResult: background-path failures that are logged and skipped.

Usage:
    from core.services import BaseService, ServiceResult

    class ChatService(BaseService):
        def apply_chat_count_increment(self, token: str, delta: int) -> ServiceResult[int]:
            try:
                with self.atomic():
                    ...
            except Exception as e:
                return self.handle_exception(e, f"chat count increment for {token}")
            return ServiceResult.success(new_value)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code
        """
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        The error code defaults to the exception's own error_code when it
        is an application error, otherwise to the upper-cased class name.
        """
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code
            or getattr(exc, "error_code", None)
            or exc.__class__.__name__.upper(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Summary used in task return values and logs."""
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error, "error_code": self.error_code}

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging named after the concrete service class
    - Database transaction management
    - Exception-to-result conversion with logging

    Design Notes:
        - Services receive their collaborators (caches, queues, search
          index) in __init__ and are built once per process, see
          messaging.dependencies.
        - Raise core.exceptions for request-path failures
        - Use ServiceResult for background-path failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this service, named after module and class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        If any operation fails, all changes are rolled back and the
        exception propagates unchanged.
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Convert exception to ServiceResult with logging.

        Args:
            exc: The caught exception
            context: Additional context for logging
            log_level: Logging level (default ERROR)
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(log_level, message, exc_info=True)
        return ServiceResult.from_exception(exc)
