"""
Helper functions for common infrastructure operations.

This module provides domain-agnostic utility functions for:
- Token generation (cryptographic)
- Lenient integer parsing of query parameters
- Pagination metadata

Usage:
    from core.helpers import calculate_pagination, generate_token, parse_int

    token = generate_token(32)
    page = parse_int(request.query_params.get("page"), default=1)
    meta = calculate_pagination(total=95, page=2, per_page=10)
"""

from __future__ import annotations

import math
import secrets


def generate_token(length: int = 32) -> str:
    """
    Generate a cryptographically secure random token.

    Args:
        length: Number of bytes (resulting string is 2x length in hex)

    Returns:
        Hexadecimal token string

    Example:
        token = generate_token()  # Returns 64-character hex string
    """
    return secrets.token_hex(length)


def parse_int(value, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Parse an integer query parameter, falling back to a default.

    Non-numeric and missing values yield ``default``. The result is then
    clamped to ``[minimum, maximum]`` when bounds are given.

    Example:
        parse_int("abc", default=10)                 # 10
        parse_int("500", default=10, maximum=50)     # 50
        parse_int("-3", default=1, minimum=1)        # 1
    """
    try:
        result = int(value)
    except (TypeError, ValueError):
        result = default
    if minimum is not None:
        result = max(result, minimum)
    if maximum is not None:
        result = min(result, maximum)
    return result


def calculate_pagination(total: int, page: int, per_page: int) -> dict:
    """
    Calculate pagination metadata.

    Args:
        total: Total number of items
        page: Current page number (1-indexed)
        per_page: Items per page

    Returns:
        Dict with pagination metadata, keys as exposed by the API

    Example:
        calculate_pagination(total=25, page=2, per_page=10)
        # {
        #     "page": 2,
        #     "limit": 10,
        #     "totalItems": 25,
        #     "totalPages": 3,
        #     "hasNext": True,
        #     "hasPrev": True,
        # }
    """
    total_pages = math.ceil(total / per_page) if per_page > 0 else 0

    return {
        "page": page,
        "limit": per_page,
        "totalItems": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
