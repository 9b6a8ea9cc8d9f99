"""Async repository pattern for database access.

Provides a generic base repository with CRUD operations, pagination and
store-error translation. Verticals subclass this to add domain-specific
queries.

Example: BookRepository extending BaseRepository.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import Base

# ---------------------------------------------------------------------------
# Type variable for model classes
# ---------------------------------------------------------------------------

ModelT = TypeVar("ModelT", bound=Base)

# Columns never overwritten by update()
PROTECTED_COLUMNS = frozenset({"id", "created_at"})


# ---------------------------------------------------------------------------
# Base repository
# ---------------------------------------------------------------------------

class BaseRepository(Generic[ModelT]):
    """Generic async repository with CRUD + pagination.

    Subclass and set `model` to your SQLAlchemy model::

        class BookRepository(BaseRepository[Book]):
            model = Book

            async def search_by_title(self, query: str):
                stmt = select(self.model).where(
                    self.model.title.ilike(f"%{query}%"),
                )
                result = await self.session.execute(stmt)
                return [r.to_dict() for r in result.scalars().all()]
    """

    model: type[ModelT]
    protected_columns: frozenset[str] = PROTECTED_COLUMNS

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- List with pagination --

    async def list(
        self,
        page: int = 1,
        limit: int = 50,
        filters: dict[str, Any] | None = None,
    ) -> tuple[list[dict], int]:
        """List items with pagination and optional equality filters.

        Returns (items, total_count).
        """
        stmt = select(self.model)
        count_stmt = select(func.count()).select_from(self.model)

        if filters:
            for col_name, value in filters.items():
                if hasattr(self.model, col_name) and value is not None:
                    stmt = stmt.where(getattr(self.model, col_name) == value)
                    count_stmt = count_stmt.where(getattr(self.model, col_name) == value)

        offset = (page - 1) * limit
        stmt = stmt.order_by(self.model.created_at.desc()).offset(offset).limit(limit)

        result = await self.session.execute(stmt)
        items = [row.to_dict() for row in result.scalars().all()]

        count_result = await self.session.execute(count_stmt)
        total = count_result.scalar() or 0

        return items, total

    async def count(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(self.model)
        )
        return result.scalar() or 0

    # -- Get by ID --

    async def get_row(self, item_id: str) -> ModelT | None:
        """Fetch the ORM row itself, always from the store."""
        stmt = select(self.model).where(self.model.id == item_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, item_id: str) -> dict | None:
        """Get a single item by ID."""
        row = await self.get_row(item_id)
        return row.to_dict() if row else None

    # -- Create --

    async def create(self, data: dict[str, Any]) -> dict:
        """Create a new item."""
        item = self.model(**data)
        self.session.add(item)
        await self.session.flush()
        return item.to_dict()

    # -- Update --

    async def update(self, item_id: str, data: dict[str, Any]) -> dict | None:
        """Update an existing item. Returns None if not found."""
        item = await self.get_row(item_id)
        if not item:
            return None

        for key, value in data.items():
            if hasattr(item, key) and key not in self.protected_columns:
                setattr(item, key, value)

        await self.session.flush()
        return item.to_dict()

    # -- Delete --

    async def delete(self, item_id: str) -> bool:
        """Delete an item. Returns True if deleted, False if not found."""
        item = await self.get_row(item_id)
        if not item:
            return False

        await self.session.delete(item)
        await self.session.flush()
        return True
