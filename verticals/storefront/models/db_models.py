"""SQLAlchemy models for the storefront vertical.

Each model inherits from Base and uses RecordMixin for ids and timestamps.
Rentals, purchases and notifications hold a plain book_id with no foreign
key: deleting a book keeps the history, and readers treat the joined book as
optional. The to_dict() method is the serialisation interface used by
repositories and routers.
"""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, RecordMixin, as_utc, utcnow
from verticals.storefront.models.schemas import RentalStatus
from verticals.storefront.rental_states import effective_status


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


class Book(RecordMixin, Base):
    """A title in the catalog and its copy pool."""

    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("available_copies >= 0", name="ck_books_available_nonnegative"),
        CheckConstraint("available_copies <= total_copies", name="ck_books_available_le_total"),
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    year_published: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    purchase_price: Mapped[float] = mapped_column(Float, nullable=False)
    rental_price_2weeks: Mapped[float] = mapped_column(Float, nullable=False)
    rental_price_1month: Mapped[float] = mapped_column(Float, nullable=False)
    rental_price_3months: Mapped[float] = mapped_column(Float, nullable=False)
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "year_published": self.year_published,
            "description": self.description,
            "cover_image_url": self.cover_image_url,
            "purchase_price": self.purchase_price,
            "rental_price_2weeks": self.rental_price_2weeks,
            "rental_price_1month": self.rental_price_1month,
            "rental_price_3months": self.rental_price_3months,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "is_available": self.is_available,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Rental(RecordMixin, Base):
    """A fixed-term loan of one copy."""

    __tablename__ = "rentals"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    book_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    rental_type: Mapped[str] = mapped_column(String(16), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    price_paid: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=RentalStatus.ACTIVE.value, index=True
    )

    def effective_status(self, now: datetime | None = None) -> RentalStatus:
        """Derived status at ``now``; evaluated on every call."""
        return effective_status(self.status, self.end_date, now or utcnow())

    def to_dict(self, now: datetime | None = None) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "rental_type": self.rental_type,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "price_paid": self.price_paid,
            "status": self.status,
            "effective_status": self.effective_status(now).value,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Purchase(RecordMixin, Base):
    """An outright sale of one copy. Immutable once written."""

    __tablename__ = "purchases"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    book_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    price_paid: Mapped[float] = mapped_column(Float, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "price_paid": self.price_paid,
            "created_at": _iso(self.created_at),
        }


class Notification(RecordMixin, Base):
    """Advisory message for a user (rental reminder or overdue notice)."""

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "is_read": self.is_read,
            "created_at": _iso(self.created_at),
        }


class InventoryMovement(Base):
    """One applied change to a book's available copies, keyed by operation.

    The row is written in the same transaction as the count change, so a
    retried step that finds its key already present knows the change was
    committed and must not be applied again.
    """

    __tablename__ = "inventory_movements"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    book_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    available_after: Mapped[int] = mapped_column(Integer, nullable=False)
    # Price snapshot, set for reservations only
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    purchase_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    rental_price_2weeks: Mapped[float | None] = mapped_column(Float, nullable=True)
    rental_price_1month: Mapped[float | None] = mapped_column(Float, nullable=True)
    rental_price_3months: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
