"""Storefront repositories — async database access for the record tables.

Extends BaseRepository with storefront-specific queries: catalog search and
facets, per-user libraries, rental listings joined with their (optional)
book, and the conditional status update used by the rental state machine.
Copy counts are not written here; see ledger.py.
"""

from datetime import datetime
from typing import Iterable

from fastapi import Depends
from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.models.base import as_utc, utcnow
from patterns.repository import PROTECTED_COLUMNS, BaseRepository
from verticals.storefront.models.db_models import Book, Notification, Purchase, Rental
from verticals.storefront.models.schemas import BookSort, RentalStatus


# ---------------------------------------------------------------------------
# Book repository (catalog store)
# ---------------------------------------------------------------------------

_SORT_COLUMNS = {
    BookSort.TITLE: Book.title.asc(),
    BookSort.AUTHOR: Book.author.asc(),
    BookSort.CATEGORY: Book.category.asc(),
    BookSort.PURCHASE_PRICE: Book.purchase_price.asc(),
    BookSort.YEAR_PUBLISHED: Book.year_published.desc(),
}


class BookRepository(BaseRepository[Book]):
    """Repository for catalog CRUD and search operations."""

    model = Book
    # available_copies belongs to the inventory ledger
    protected_columns = PROTECTED_COLUMNS | {"available_copies", "total_copies"}

    async def search(
        self,
        query: str | None = None,
        category: str | None = None,
        author: str | None = None,
        available_only: bool = False,
        sort_by: BookSort = BookSort.TITLE,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[dict], int]:
        """Search books with multiple filters."""
        conditions = []
        if query:
            pattern = f"%{query}%"
            conditions.append(or_(Book.title.ilike(pattern), Book.author.ilike(pattern)))
        if category:
            conditions.append(Book.category == category)
        if author:
            conditions.append(Book.author == author)
        if available_only:
            conditions.append(Book.is_available.is_(True))
            conditions.append(Book.available_copies > 0)

        stmt = select(Book).where(*conditions)
        offset = (page - 1) * limit
        stmt = stmt.order_by(_SORT_COLUMNS[BookSort(sort_by)], Book.id).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        books = [row.to_dict() for row in result.scalars().all()]

        count_stmt = select(func.count()).select_from(Book).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        return books, total

    async def categories(self) -> list[str]:
        result = await self.session.execute(
            select(Book.category).distinct().order_by(Book.category)
        )
        return list(result.scalars().all())

    async def authors(self) -> list[str]:
        result = await self.session.execute(
            select(Book.author).distinct().order_by(Book.author)
        )
        return list(result.scalars().all())

    async def get_many(self, book_ids: Iterable[str]) -> dict[str, dict]:
        """Books by id; missing ids are simply absent from the result."""
        ids = set(book_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(Book).where(Book.id.in_(ids)))
        return {row.id: row.to_dict() for row in result.scalars().all()}


# ---------------------------------------------------------------------------
# Rental repository
# ---------------------------------------------------------------------------

class RentalRepository(BaseRepository[Rental]):
    """Repository for rental records."""

    model = Rental

    async def create(self, data: dict, now: datetime | None = None) -> dict:
        item = Rental(**data)
        self.session.add(item)
        await self.session.flush()
        return item.to_dict(now)

    async def get(self, item_id: str, now: datetime | None = None) -> dict | None:
        row = await self.get_row(item_id)
        return row.to_dict(now) if row else None

    async def list_with_books(
        self,
        user_id: str | None = None,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Rentals newest first, each with ``book`` set to the joined book or None."""
        stmt = select(Rental, Book).outerjoin(Book, Book.id == Rental.book_id)
        if user_id is not None:
            stmt = stmt.where(Rental.user_id == user_id)
        stmt = stmt.order_by(Rental.created_at.desc(), Rental.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        rentals = []
        for rental, book in result.all():
            item = rental.to_dict(now)
            item["book"] = book.to_dict() if book else None
            rentals.append(item)
        return rentals

    async def summary(self, now: datetime) -> dict:
        """Counts and revenue over all rentals, overdue derived at ``now``."""
        overdue = or_(
            Rental.status == RentalStatus.OVERDUE.value,
            and_(
                Rental.status == RentalStatus.ACTIVE.value,
                Rental.end_date < as_utc(now),
            ),
        )
        active = Rental.status == RentalStatus.ACTIVE.value
        stmt = select(
            func.count(Rental.id),
            func.coalesce(func.sum(Rental.price_paid), 0.0),
            func.coalesce(func.sum(case((active, 1), else_=0)), 0),
            func.coalesce(func.sum(case((overdue, 1), else_=0)), 0),
        )
        total, revenue, active_count, overdue_count = (await self.session.execute(stmt)).one()
        return {
            "total": total or 0,
            "revenue": float(revenue or 0.0),
            "active": int(active_count or 0),
            "overdue": int(overdue_count or 0),
        }

    async def transition_status(
        self,
        rental_id: str,
        from_states: Iterable[RentalStatus],
        to_state: RentalStatus,
    ) -> RentalStatus | None:
        """Conditionally set status.

        Returns the status that was replaced, or None if the stored status
        was not in ``from_states`` (or changed under us).
        """
        allowed = {RentalStatus(s) for s in from_states}
        current = (
            await self.session.execute(
                select(Rental.status).where(Rental.id == rental_id).with_for_update()
            )
        ).scalar_one_or_none()
        if current is None or RentalStatus(current) not in allowed:
            return None

        stmt = (
            update(Rental)
            .where(Rental.id == rental_id, Rental.status == current)
            .values(status=RentalStatus(to_state).value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return RentalStatus(current) if result.rowcount == 1 else None


# ---------------------------------------------------------------------------
# Purchase repository
# ---------------------------------------------------------------------------

class PurchaseRepository(BaseRepository[Purchase]):
    """Repository for purchase records."""

    model = Purchase

    async def revenue(self) -> float:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Purchase.price_paid), 0.0))
        )
        return float(result.scalar() or 0.0)

    async def list_with_books(
        self,
        user_id: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        stmt = select(Purchase, Book).outerjoin(Book, Book.id == Purchase.book_id)
        if user_id is not None:
            stmt = stmt.where(Purchase.user_id == user_id)
        stmt = stmt.order_by(Purchase.created_at.desc(), Purchase.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        purchases = []
        for purchase, book in result.all():
            item = purchase.to_dict()
            item["book"] = book.to_dict() if book else None
            purchases.append(item)
        return purchases


# ---------------------------------------------------------------------------
# Notification repository
# ---------------------------------------------------------------------------

class NotificationRepository(BaseRepository[Notification]):
    """Repository for user notifications."""

    model = Notification

    async def get_for_user(self, user_id: str, unread_only: bool = False) -> list[dict]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc())

        result = await self.session.execute(stmt)
        return [row.to_dict() for row in result.scalars().all()]

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        stmt = (
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


# ---------------------------------------------------------------------------
# FastAPI dependency factories
# ---------------------------------------------------------------------------

def get_book_repository(
    session: AsyncSession = Depends(get_session),
) -> BookRepository:
    """FastAPI dependency for BookRepository."""
    return BookRepository(session)


def get_notification_repository(
    session: AsyncSession = Depends(get_session),
) -> NotificationRepository:
    """FastAPI dependency for NotificationRepository."""
    return NotificationRepository(session)
