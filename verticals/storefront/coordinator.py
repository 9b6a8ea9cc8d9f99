"""Transaction coordinator — purchase, rent and return as single logical units.

Each step (reserve a copy, write a record, change a status) runs in its own
short unit of work and is retried a bounded number of times on transient
store errors. Steps that committed register a compensating action, so a
failure later in the same operation puts the copy count (or the rental
status) back before the error reaches the caller:

    purchase: reserve ─► create purchase          (undo: release)
    rent:     reserve ─► create rental            (undo: release)
    return:   mark returned ─► release            (undo: restore status)

Business errors (InsufficientCopies, NotFound, InvalidStateTransition,
Forbidden) are never retried.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import get_session_context
from core.models.base import utcnow
from core.resilience import RetryPolicy
from patterns.compensation import CompensationScope
from patterns.domain_config import StorefrontConfig
from verticals.storefront.errors import InvalidStateTransition, NotFound, TransientStoreError, store_errors
from verticals.storefront.identity import Identity, require_admin, require_owner_or_admin, require_user
from verticals.storefront.ledger import InventoryLedger, Reservation
from verticals.storefront.models.schemas import NotificationKind, RentalStatus, RentalTerm
from verticals.storefront.notifications import NotificationSink
from verticals.storefront.rental_states import (
    OPEN_STATES,
    effective_status,
    end_date_for,
    ensure_transition,
    price_for_term,
)
from verticals.storefront.repository import BookRepository, PurchaseRepository, RentalRepository

logger = logging.getLogger(__name__)


class TransactionCoordinator:
    """Orchestrates inventory and record writes for one user action."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: StorefrontConfig | None = None,
        notifier: NotificationSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.config = config or StorefrontConfig.default()
        self.notifier = notifier or NotificationSink(session_factory)
        self.clock = clock
        self.retry = RetryPolicy.from_config(
            self.config.resilience, retry_on=(TransientStoreError,)
        )

    # -- Unit-of-work plumbing --

    async def _step(self, name: str, func: Callable[[AsyncSession], Awaitable[Any]]) -> Any:
        """Run ``func(session)`` in its own transaction with bounded retry."""

        async def attempt():
            async with store_errors(name):
                async with get_session_context(self.session_factory) as session:
                    return await func(session)

        return await self.retry.call(attempt)

    # One key per logical step: retries of the step share it
    async def _reserve(self, book_id: str) -> Reservation:
        key = str(uuid.uuid4())
        return await self._step("reserve", lambda s: InventoryLedger(s).reserve(book_id, key=key))

    async def _release(self, book_id: str) -> bool:
        key = str(uuid.uuid4())
        return await self._step("release", lambda s: InventoryLedger(s).release(book_id, key=key))

    async def _load_rental(self, rental_id: str) -> dict:
        now = self.clock()
        rental = await self._step(
            "load rental", lambda s: RentalRepository(s).get(rental_id, now=now)
        )
        if rental is None:
            raise NotFound("rental", rental_id)
        return rental

    async def _set_status(
        self, rental_id: str, from_states, to_state: RentalStatus
    ) -> RentalStatus | None:
        return await self._step(
            "set rental status",
            lambda s: RentalRepository(s).transition_status(rental_id, from_states, to_state),
        )

    # -- Purchase --

    async def purchase(self, identity: Identity | None, book_id: str) -> dict:
        """Buy one copy at the current purchase price."""
        identity = require_user(identity)
        now = self.clock()

        async with CompensationScope("purchase") as scope:
            reservation = await self._reserve(book_id)
            scope.on_failure(self._release, book_id)
            purchase = await self._step(
                "create purchase",
                lambda s: PurchaseRepository(s).create({
                    "user_id": identity.user_id,
                    "book_id": book_id,
                    "price_paid": reservation.purchase_price,
                    "created_at": now,
                    "updated_at": now,
                }),
            )

        logger.info(
            "User %s purchased book %s for %.2f (%d copies left)",
            identity.user_id, book_id, reservation.purchase_price, reservation.available_copies,
        )
        return purchase

    # -- Rent --

    async def rent(
        self,
        identity: Identity | None,
        book_id: str,
        term: RentalTerm | str,
    ) -> dict:
        """Rent one copy for ``term``; price and end date are fixed now."""
        identity = require_user(identity)
        term = RentalTerm(term)
        start = self.clock()
        end = end_date_for(term, start, self.config.rentals)

        async with CompensationScope("rent") as scope:
            reservation = await self._reserve(book_id)
            scope.on_failure(self._release, book_id)
            rental = await self._step(
                "create rental",
                lambda s: RentalRepository(s).create(
                    {
                        "user_id": identity.user_id,
                        "book_id": book_id,
                        "rental_type": term.value,
                        "start_date": start,
                        "end_date": end,
                        "price_paid": price_for_term(reservation, term),
                        "status": RentalStatus.ACTIVE.value,
                        "created_at": start,
                        "updated_at": start,
                    },
                    now=start,
                ),
            )

        logger.info(
            "User %s rented book %s for %s until %s",
            identity.user_id, book_id, term.value, end.date().isoformat(),
        )
        return rental

    # -- Return --

    async def return_rental(self, identity: Identity | None, rental_id: str) -> dict:
        """Mark a rental returned and put its copy back in the pool."""
        identity = require_user(identity)
        rental = await self._load_rental(rental_id)
        require_owner_or_admin(identity, rental["user_id"])

        ensure_transition(rental["status"], RentalStatus.RETURNED)

        async with CompensationScope("return") as scope:
            previous = await self._set_status(rental_id, OPEN_STATES, RentalStatus.RETURNED)
            if previous is None:
                # Someone else closed it between the read and the write
                current = await self._load_rental(rental_id)
                raise InvalidStateTransition(current["status"], RentalStatus.RETURNED.value)
            # Restore what the update replaced, not what was read earlier
            scope.on_failure(self._set_status, rental_id, [RentalStatus.RETURNED], previous)

            try:
                await self._release(rental["book_id"])
            except NotFound:
                logger.warning(
                    "Book %s of rental %s no longer exists; nothing to release",
                    rental["book_id"], rental_id,
                )

        logger.info("Rental %s returned by %s", rental_id, identity.user_id)
        return await self._load_rental(rental_id)

    # -- Admin actions --

    async def set_status(
        self,
        identity: Identity | None,
        rental_id: str,
        status: RentalStatus | str,
    ) -> dict:
        """Administrative status change; returning goes through return_rental."""
        identity = require_admin(identity)
        status = RentalStatus(status)
        if status == RentalStatus.RETURNED:
            return await self.return_rental(identity, rental_id)

        rental = await self._load_rental(rental_id)
        current = RentalStatus(rental["status"])
        ensure_transition(current, status)
        if await self._set_status(rental_id, [current], status) is None:
            latest = await self._load_rental(rental_id)
            raise InvalidStateTransition(latest["status"], status.value)

        logger.info("Rental %s set to %s by admin %s", rental_id, status.value, identity.user_id)
        return await self._load_rental(rental_id)

    async def send_reminder(self, identity: Identity | None, rental_id: str) -> dict | None:
        """Notify the renter about the end date. Does not change the rental."""
        require_admin(identity)
        rental = await self._load_rental(rental_id)
        if RentalStatus(rental["status"]) not in OPEN_STATES:
            raise InvalidStateTransition(rental["status"], "reminded")

        book = await self._step("load book", lambda s: BookRepository(s).get(rental["book_id"]))
        title = book["title"] if book else "your book"
        end = datetime.fromisoformat(rental["end_date"])
        status = effective_status(rental["status"], end, self.clock())

        if status == RentalStatus.OVERDUE:
            kind = NotificationKind.RENTAL_OVERDUE
            heading = "Rental overdue"
            message = f'Your rental of "{title}" was due on {end:%Y-%m-%d}. Please return it.'
        else:
            kind = NotificationKind.RENTAL_REMINDER
            heading = "Rental reminder"
            message = f'Your rental of "{title}" ends on {end:%Y-%m-%d}.'

        return await self.notifier.send(rental["user_id"], heading, message, kind)
