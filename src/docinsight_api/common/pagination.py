"""Offset pagination over SQLAlchemy select statements."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


@dataclass(slots=True)
class Page(Generic[T]):
    items: Sequence[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


async def paginate_sql(
    session: AsyncSession,
    stmt: Select[Any],
    *,
    page: int,
    limit: int,
    order_by: Sequence[Any],
) -> Page[Any]:
    """Run ``stmt`` for one page and count all rows matching the same filters."""

    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = int((await session.execute(count_stmt)).scalar_one())

    offset = (page - 1) * limit
    result = await session.execute(stmt.order_by(*order_by).offset(offset).limit(limit))
    return Page(items=list(result.scalars().all()), total=total, page=page, limit=limit)


__all__ = ["Page", "paginate_sql"]
