"""Pagination helpers shared by the list endpoints.

- apply_pagination: adds OFFSET/LIMIT
- paginated_query: executes count + data queries, clamps page, returns (items, total, page)
- build_paginated_response: shapes the result for a ``PaginatedResponse`` model
"""

from __future__ import annotations

import math
from typing import Any

from sqlalchemy import Select, func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession


def apply_pagination(statement: Select, page: int = 1, page_size: int = 20) -> Select:
    """Apply OFFSET/LIMIT. ``page_size=0`` means no pagination (all rows)."""
    if page_size <= 0:
        return statement
    return statement.offset((page - 1) * page_size).limit(page_size)


def count_statement(statement: Select) -> Select:
    """Wrap a filtered select so it returns the row count, ignoring ORDER BY."""
    return select(func.count()).select_from(statement.order_by(None).subquery())


def _clamp_page(page: int, page_size: int, total_count: int) -> int:
    """Reset page to 1 if it overshoots the available results."""
    if page_size <= 0 or total_count == 0:
        return 1
    max_page = math.ceil(total_count / page_size)
    return 1 if page > max_page else page


async def paginated_query(
    session: AsyncSession,
    data_stmt: Select,
    page: int = 1,
    page_size: int = 20,
    count_stmt: Select | None = None,
) -> tuple[list, int, int]:
    """Execute count + data queries with automatic page clamping.

    Returns ``(items, total_count, actual_page)``.
    """
    total_count = (await session.exec(count_stmt if count_stmt is not None else count_statement(data_stmt))).one()
    page = _clamp_page(page, page_size, total_count)

    result = await session.exec(apply_pagination(data_stmt, page, page_size))
    items = list(result.all())
    return items, total_count, page


def build_paginated_response(
    items: list,
    total_count: int,
    page: int,
    page_size: int,
    **extra: Any,
) -> dict:
    if page_size <= 0:
        return {
            "items": items,
            "total_count": total_count,
            "page": 1,
            "page_size": page_size,
            "total_pages": 1,
            "has_next": False,
            "has_prev": False,
            **extra,
        }
    return {
        "items": items,
        "total_count": total_count,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total_count / page_size) if total_count else 0,
        "has_next": page * page_size < total_count,
        "has_prev": page > 1,
        **extra,
    }
