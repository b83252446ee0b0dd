"""
Base repository with common CRUD operations.
"""

from typing import TypeVar, Generic, Type, Any
from uuid import UUID
from sqlalchemy import Select, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from permguard.models.base import Base
from permguard.utils.ids import to_uuid
from permguard.utils.pagination import Page

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """
    Base repository providing common CRUD operations.

    Usage:
        class PermissionRepository(BaseRepository[Permission]):
            model = Permission

        repo = PermissionRepository(db)
        permission = await repo.get_by_id(permission_id)
        page = await repo.paginate(page=1, per_page=20, module="finance")
    """

    model: Type[ModelT]

    def __init__(self, db: AsyncSession):
        self.db = db

    def _base_query(self) -> Select:
        """Base query - override to add default filters or eager loads."""
        return select(self.model)

    def _apply_filters(self, stmt: Select, filters: dict[str, Any]) -> Select:
        for field, value in filters.items():
            if value is not None:
                stmt = stmt.where(getattr(self.model, field) == value)
        return stmt

    async def get_by_id(self, id: UUID | str) -> ModelT | None:
        """Get entity by ID."""
        stmt = self._base_query().where(self.model.id == to_uuid(id))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_ids(self, ids: list[UUID]) -> list[ModelT]:
        """Get multiple entities by IDs."""
        if not ids:
            return []
        stmt = self._base_query().where(self.model.id.in_([to_uuid(i) for i in ids]))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_one(self, **filters) -> ModelT | None:
        """Get single entity by filters."""
        stmt = self._base_query()
        for field, value in filters.items():
            stmt = stmt.where(getattr(self.model, field) == value)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def exists(self, **filters) -> bool:
        """Check if entity exists."""
        stmt = select(func.count()).select_from(self.model)
        for field, value in filters.items():
            stmt = stmt.where(getattr(self.model, field) == value)
        count = await self.db.scalar(stmt)
        return (count or 0) > 0

    async def paginate(
        self,
        stmt: Select | None = None,
        page: int = 1,
        per_page: int = 20,
        order_by: Any = None,
        **filters,
    ) -> Page:
        """
        Paginate a query.

        Args:
            stmt: Pre-built query (defaults to the base query)
            page: Page number (1-indexed)
            per_page: Items per page
            order_by: Column expression(s) to order by
            **filters: Field=value filters, None values are skipped
        """
        if stmt is None:
            stmt = self._base_query()
        stmt = self._apply_filters(stmt, filters)

        # Count total
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = await self.db.scalar(count_stmt) or 0

        if order_by is not None:
            if isinstance(order_by, (list, tuple)):
                stmt = stmt.order_by(*order_by)
            else:
                stmt = stmt.order_by(order_by)

        offset = (page - 1) * per_page
        stmt = stmt.offset(offset).limit(per_page)

        result = await self.db.execute(stmt)
        items = list(result.scalars().all())

        return Page.create(items=items, total=total, page=page, per_page=per_page)

    async def delete(self, entity: ModelT) -> None:
        """Delete entity (hard delete)."""
        await self.db.delete(entity)
        await self.db.flush()
