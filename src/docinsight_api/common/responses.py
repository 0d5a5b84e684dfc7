"""Response envelopes shared by every API route.

Successful payloads are wrapped as ``{"success": true, "data": ..., "timestamp": ...}``;
listings add a ``pagination`` block. Errors use the shape produced by
:mod:`docinsight_api.common.exceptions`.
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import Field

from .pagination import Page
from .schema import BaseSchema
from .time import isoformat_z, utc_now

DataT = TypeVar("DataT")


def _timestamp() -> str:
    return isoformat_z(utc_now())


class ApiResponse(BaseSchema, Generic[DataT]):
    """Single-object success envelope."""

    success: bool = True
    data: DataT | None = None
    message: str | None = None
    timestamp: str = Field(default_factory=_timestamp)


class PaginationMeta(BaseSchema):
    page: int
    limit: int
    total: int
    total_pages: int


class PaginatedResponse(BaseSchema, Generic[DataT]):
    """Listing envelope with page metadata."""

    success: bool = True
    data: list[DataT]
    pagination: PaginationMeta
    timestamp: str = Field(default_factory=_timestamp)

    @classmethod
    def from_page(cls, page: Page, items: list[DataT]) -> PaginatedResponse[DataT]:
        return cls(
            data=items,
            pagination=PaginationMeta(
                page=page.page,
                limit=page.limit,
                total=page.total,
                total_pages=page.total_pages,
            ),
        )


def error_body(error: object, **extra: object) -> dict[str, object]:
    """Return the JSON body used for every error response."""

    body: dict[str, object] = {"success": False, "error": error, "timestamp": _timestamp()}
    body.update(extra)
    return body


__all__ = ["ApiResponse", "PaginatedResponse", "PaginationMeta", "error_body"]
