"""
Database Pagination Utilities
==============================
Helper functions for consistent pagination over the append-only history tables.

History grows by one row per event fire and per reconciliation pass, so every
read is bounded:
- Default limit: 50 (one screen of history)
- Maximum limit: 500
- Minimum limit: 1
- Minimum offset: 0

Author: Sebastian Gomez
Date: January 2026
"""

from dataclasses import dataclass
from typing import Any

DEFAULT_LIMIT = 50
MAX_LIMIT = 500
MIN_LIMIT = 1
MIN_OFFSET = 0


@dataclass
class PaginationParams:
    """Validated pagination parameters."""

    limit: int
    offset: int

    @classmethod
    def from_request(
        cls,
        limit: int | None = None,
        offset: int | None = None,
    ) -> "PaginationParams":
        """
        Create validated pagination parameters from caller inputs.

        Args:
            limit: Number of rows per page (default: 50, max: 500)
            offset: Number of rows to skip (default: 0, min: 0)

        Returns:
            PaginationParams with validated values

        Raises:
            ValueError: If limit or offset are out of valid ranges
        """
        if limit is None:
            validated_limit = DEFAULT_LIMIT
        else:
            if limit < MIN_LIMIT:
                raise ValueError(f"Limit must be at least {MIN_LIMIT}")
            if limit > MAX_LIMIT:
                raise ValueError(f"Limit cannot exceed {MAX_LIMIT}")
            validated_limit = limit

        if offset is None:
            validated_offset = MIN_OFFSET
        else:
            if offset < MIN_OFFSET:
                raise ValueError(f"Offset must be at least {MIN_OFFSET}")
            validated_offset = offset

        return cls(limit=validated_limit, offset=validated_offset)

    def to_sql_clause(self) -> str:
        return f"LIMIT {self.limit} OFFSET {self.offset}"


@dataclass
class PaginatedResponse:
    """One page of history plus the unpaged total."""

    items: list[Any]
    total: int
    limit: int
    offset: int

    @property
    def has_next(self) -> bool:
        return (self.offset + self.limit) < self.total

    @property
    def has_prev(self) -> bool:
        return self.offset > 0

    @property
    def page_count(self) -> int:
        if self.limit == 0:
            return 0
        return (self.total + self.limit - 1) // self.limit

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "items": [item.to_dict() if hasattr(item, "to_dict") else item for item in self.items],
            "pagination": {
                "total": self.total,
                "limit": self.limit,
                "offset": self.offset,
                "has_next": self.has_next,
                "has_prev": self.has_prev,
                "page_count": self.page_count,
            },
        }


def apply_pagination_to_query(
    query: str,
    limit: int | None = None,
    offset: int | None = None,
) -> tuple[str, int, int]:
    """
    Add LIMIT/OFFSET clause to SQL query.

    Args:
        query: Base SQL query (should not already have LIMIT/OFFSET)
        limit: Number of rows per page
        offset: Number of rows to skip

    Returns:
        Tuple of (query_with_pagination, validated_limit, validated_offset)

    Raises:
        ValueError: If parameters are invalid

    Example:
        >>> query = "SELECT * FROM ScheduleAuditEvents WHERE user_id = ? ORDER BY timestamp DESC"
        >>> paginated_query, limit, offset = apply_pagination_to_query(query, 20, 40)
        >>> print(paginated_query)
        SELECT * FROM ScheduleAuditEvents WHERE user_id = ? ORDER BY timestamp DESC LIMIT 20 OFFSET 40
    """
    params = PaginationParams.from_request(limit=limit, offset=offset)
    paginated_query = f"{query.rstrip(';')} {params.to_sql_clause()}"
    return paginated_query, params.limit, params.offset
