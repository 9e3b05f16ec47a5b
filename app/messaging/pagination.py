"""
Page/limit pagination for messaging list endpoints.

List endpoints use offset pagination addressed by page number, matching the
response meta exposed by the API:

    GET /api/v1/applications/?page=2&limit=20
    {"data": [...], "meta": {"page", "limit", "totalItems", "totalPages",
                             "hasNext", "hasPrev"}}

Parsing is lenient: non-numeric values fall back to the defaults, page is
clamped to 1..100000 and limit to 1..50.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.helpers import parse_int
from messaging.constants import PAGINATION_CONFIG


@dataclass(frozen=True)
class PageParams:
    page: int = PAGINATION_CONFIG.DEFAULT_PAGE
    limit: int = PAGINATION_CONFIG.DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_query(cls, query_params) -> PageParams:
        """Build from request.query_params (or any mapping)."""
        return cls(
            page=parse_int(
                query_params.get("page"),
                default=PAGINATION_CONFIG.DEFAULT_PAGE,
                minimum=1,
                maximum=PAGINATION_CONFIG.MAX_PAGE,
            ),
            limit=parse_int(
                query_params.get("limit"),
                default=PAGINATION_CONFIG.DEFAULT_LIMIT,
                minimum=1,
                maximum=PAGINATION_CONFIG.MAX_LIMIT,
            ),
        )
