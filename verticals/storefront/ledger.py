"""Inventory ledger — the only writer of a book's copy counts.

Every mutation is a single conditional UPDATE evaluated against the stored
value, so two requests racing for the last copy serialize in the database:

    UPDATE books SET available_copies = available_copies - 1
     WHERE id = :id AND available_copies > 0
    RETURNING ...

No count is ever computed from a row the caller read earlier. The ledger
fails fast; undoing a reservation when a later step fails is the
coordinator's job.

reserve() and release() accept an operation key. A keyed change writes an
InventoryMovement row in the same transaction, and a retry carrying the same
key replays the recorded result instead of moving another copy.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import utcnow
from verticals.storefront.errors import InsufficientCopies, InvalidInventoryChange, NotFound
from verticals.storefront.models.db_models import Book, InventoryMovement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    """One copy taken from the pool, with the prices in force at that moment."""

    book_id: str
    title: str
    purchase_price: float
    rental_price_2weeks: float
    rental_price_1month: float
    rental_price_3months: float
    available_copies: int


class InventoryLedger:
    """Atomic reserve/release of copies on the books table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _exists(self, book_id: str) -> bool:
        result = await self.session.execute(select(Book.id).where(Book.id == book_id))
        return result.scalar_one_or_none() is not None

    async def _movement(self, key: str | None) -> InventoryMovement | None:
        if key is None:
            return None
        return await self.session.get(InventoryMovement, key)

    async def reserve(self, book_id: str, key: str | None = None) -> Reservation:
        """Take one copy. Raises InsufficientCopies or NotFound."""
        applied = await self._movement(key)
        if applied is not None:
            logger.info("Reservation %s already applied to book %s", key, applied.book_id)
            return Reservation(
                book_id=applied.book_id,
                title=applied.title,
                purchase_price=applied.purchase_price,
                rental_price_2weeks=applied.rental_price_2weeks,
                rental_price_1month=applied.rental_price_1month,
                rental_price_3months=applied.rental_price_3months,
                available_copies=applied.available_after,
            )

        stmt = (
            update(Book)
            .where(Book.id == book_id, Book.available_copies > 0)
            .values(
                available_copies=Book.available_copies - 1,
                updated_at=utcnow(),
            )
            .returning(
                Book.id,
                Book.title,
                Book.purchase_price,
                Book.rental_price_2weeks,
                Book.rental_price_1month,
                Book.rental_price_3months,
                Book.available_copies,
            )
            .execution_options(synchronize_session=False)
        )
        row = (await self.session.execute(stmt)).one_or_none()
        if row is None:
            if not await self._exists(book_id):
                raise NotFound("book", book_id)
            raise InsufficientCopies(book_id)

        reservation = Reservation(
            book_id=row.id,
            title=row.title,
            purchase_price=float(row.purchase_price),
            rental_price_2weeks=float(row.rental_price_2weeks),
            rental_price_1month=float(row.rental_price_1month),
            rental_price_3months=float(row.rental_price_3months),
            available_copies=row.available_copies,
        )
        if key is not None:
            self.session.add(InventoryMovement(
                id=key,
                book_id=book_id,
                delta=-1,
                available_after=reservation.available_copies,
                title=reservation.title,
                purchase_price=reservation.purchase_price,
                rental_price_2weeks=reservation.rental_price_2weeks,
                rental_price_1month=reservation.rental_price_1month,
                rental_price_3months=reservation.rental_price_3months,
            ))
            await self.session.flush()
        return reservation

    async def release(self, book_id: str, key: str | None = None) -> bool:
        """Return one copy to the pool.

        Capped at total_copies: a release on a full pool changes nothing and
        returns False. Raises NotFound if the book is gone.
        """
        if await self._movement(key) is not None:
            logger.info("Release %s already applied to book %s", key, book_id)
            return True

        stmt = (
            update(Book)
            .where(Book.id == book_id, Book.available_copies < Book.total_copies)
            .values(
                available_copies=Book.available_copies + 1,
                updated_at=utcnow(),
            )
            .returning(Book.available_copies)
            .execution_options(synchronize_session=False)
        )
        available = (await self.session.execute(stmt)).scalar_one_or_none()
        if available is not None:
            if key is not None:
                self.session.add(InventoryMovement(
                    id=key, book_id=book_id, delta=1, available_after=available,
                ))
                await self.session.flush()
            return True

        if not await self._exists(book_id):
            raise NotFound("book", book_id)
        logger.warning("Release of book %s ignored: pool already full", book_id)
        return False

    async def adjust_total(self, book_id: str, new_total: int) -> int:
        """Set total_copies, shifting available_copies by the same delta.

        Returns the new available count. Rejects totals that would leave
        fewer copies than are currently out on loan.
        """
        if new_total < 0:
            raise InvalidInventoryChange("total_copies cannot be negative")

        delta = new_total - Book.total_copies
        stmt = (
            update(Book)
            .where(Book.id == book_id, Book.available_copies + delta >= 0)
            .values(
                total_copies=new_total,
                available_copies=Book.available_copies + delta,
                updated_at=utcnow(),
            )
            .returning(Book.available_copies)
            .execution_options(synchronize_session=False)
        )
        available = (await self.session.execute(stmt)).scalar_one_or_none()
        if available is None:
            if not await self._exists(book_id):
                raise NotFound("book", book_id)
            raise InvalidInventoryChange(
                f"Cannot set total_copies to {new_total}: more copies are out on loan"
            )
        return available
