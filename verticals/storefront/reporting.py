"""Admin query and reporting — read-only aggregation.

Nothing here writes. Overdue is evaluated per row at the query's ``now``
and never stored; a rental whose book was deleted still counts, with its
book fields reported as None.
"""

from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import get_session_context
from core.models.base import as_utc, utcnow
from patterns.domain_config import StorefrontConfig
from verticals.storefront.identity import Identity, require_admin, require_user
from verticals.storefront.models.schemas import ActivityEntry, DashboardStats, RentalStatus
from verticals.storefront.repository import BookRepository, PurchaseRepository, RentalRepository


class ReportingService:
    """Dashboard statistics, activity feed and rental listings."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: StorefrontConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.config = config or StorefrontConfig.default()
        self.clock = clock

    async def dashboard_stats(self, identity: Identity | None) -> DashboardStats:
        require_admin(identity)
        now = self.clock()
        async with get_session_context(self.session_factory) as session:
            total_books = await BookRepository(session).count()
            rentals = await RentalRepository(session).summary(now)
            purchase_repo = PurchaseRepository(session)
            total_purchases = await purchase_repo.count()
            purchase_revenue = await purchase_repo.revenue()

        return DashboardStats(
            total_books=total_books,
            total_rentals=rentals["total"],
            total_purchases=total_purchases,
            total_revenue=round(rentals["revenue"] + purchase_revenue, 2),
            active_rentals=rentals["active"],
            overdue_rentals=rentals["overdue"],
        )

    async def recent_activity(
        self,
        identity: Identity | None,
        limit: int | None = None,
    ) -> list[ActivityEntry]:
        """Rentals and purchases merged, newest first."""
        require_admin(identity)
        limit = limit or self.config.reporting.recent_activity_limit
        async with get_session_context(self.session_factory) as session:
            # newest n of each side is enough to fill the merged top n
            rentals = await RentalRepository(session).list_with_books(limit=limit)
            purchases = await PurchaseRepository(session).list_with_books(limit=limit)

        entries = [
            _activity("rental", item) for item in rentals
        ] + [
            _activity("purchase", item) for item in purchases
        ]
        entries.sort(key=lambda e: e.date, reverse=True)
        return entries[:limit]

    async def list_rentals(
        self,
        identity: Identity | None,
        status: RentalStatus | str | None = None,
        search: str | None = None,
    ) -> list[dict]:
        """Admin rental table. ``status`` filters on the effective status."""
        require_admin(identity)
        now = self.clock()
        async with get_session_context(self.session_factory) as session:
            rentals = await RentalRepository(session).list_with_books(now=now)

        if status is not None:
            wanted = RentalStatus(status).value
            rentals = [r for r in rentals if r["effective_status"] == wanted]
        if search:
            needle = search.lower()
            rentals = [r for r in rentals if _matches(r, needle)]
        return rentals

    async def user_library(self, identity: Identity | None) -> dict:
        """The caller's rentals and purchases, newest first."""
        identity = require_user(identity)
        now = self.clock()
        async with get_session_context(self.session_factory) as session:
            rentals = await RentalRepository(session).list_with_books(identity.user_id, now=now)
            purchases = await PurchaseRepository(session).list_with_books(identity.user_id)
        return {"rentals": rentals, "purchases": purchases}


def _activity(kind: str, item: dict) -> ActivityEntry:
    book = item.get("book")
    return ActivityEntry(
        kind=kind,
        record_id=item["id"],
        user_id=item["user_id"],
        book_id=item["book_id"],
        book_title=book["title"] if book else None,
        amount=item["price_paid"],
        date=as_utc(datetime.fromisoformat(item["created_at"])),
    )


def _matches(rental: dict, needle: str) -> bool:
    book = rental.get("book") or {}
    haystack = (
        book.get("title") or "",
        book.get("author") or "",
        rental["user_id"],
    )
    return any(needle in value.lower() for value in haystack)
