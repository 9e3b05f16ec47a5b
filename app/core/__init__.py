"""
Core Application - Infrastructure & Base Classes

This app contains infrastructure code shared by domain apps. It holds no
chat or message logic.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Services (import from core.services):
    - BaseService: Base class for service layer (logging, transactions)
    - ServiceResult: Result wrapper for background-path failures

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - ValidationError, NotFoundError, ConflictError

Exception handling (import from core.exception_handler):
    - api_exception_handler: DRF EXCEPTION_HANDLER rendering the errors above

Helpers (import from core.helpers):
    - generate_token: Cryptographically secure token generation
    - parse_int: Lenient integer parsing for query parameters
    - calculate_pagination: Pagination metadata calculation

Views (import from core.views):
    - health_check: Database, Redis and broker connectivity check
"""
