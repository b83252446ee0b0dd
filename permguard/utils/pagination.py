"""
Offset pagination utilities.

Usage:
    GET /api/permissions?page=1&per_page=20
"""

from typing import TypeVar, Generic, Sequence

from fastapi import Query
from pydantic import BaseModel, Field

T = TypeVar("T")


class OffsetParams(BaseModel):
    """Offset pagination parameters."""

    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    per_page: int = Field(default=20, ge=1, le=100, description="Items per page")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        return self.per_page


class OffsetPage(BaseModel, Generic[T]):
    """Offset pagination response."""

    items: list[T]
    total: int
    page: int
    per_page: int
    pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def create(
        cls,
        items: Sequence[T],
        total: int,
        page: int,
        per_page: int,
    ) -> "OffsetPage[T]":
        pages = (total + per_page - 1) // per_page if per_page > 0 else 0
        return cls(
            items=list(items),
            total=total,
            page=page,
            per_page=per_page,
            pages=pages,
            has_next=page < pages,
            has_prev=page > 1,
        )


def get_offset_params(
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(20, ge=1, le=100, description="Items per page"),
) -> OffsetParams:
    """FastAPI dependency for offset pagination."""
    return OffsetParams(page=page, per_page=per_page)


Page = OffsetPage


def convert_page(page: OffsetPage, schema: type[BaseModel]) -> OffsetPage:
    """Re-wrap a page of ORM entities as a page of response schemas."""
    return OffsetPage[schema].create(
        items=[schema.model_validate(item) for item in page.items],
        total=page.total,
        page=page.page,
        per_page=page.per_page,
    )
