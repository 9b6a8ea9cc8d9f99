"""Storefront API router — catalog, purchase/rent/return, admin views.

Demonstrates the standard router pattern:
- Catalog CRUD with search, facets, sorting and pagination
- Purchase / rent / return delegated to the TransactionCoordinator
- Admin rental table, status override, reminders and dashboard
- Admin view, replay and discard of parked notifications
- Identity from middleware, services injected via FastAPI Depends

StorefrontError subclasses raised below are rendered by the exception
handler registered in api/main.py.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.middleware import get_current_identity
from core.database import get_session, get_session_factory
from core.resilience import DeadLetterQueue
from verticals.storefront.config import config
from verticals.storefront.coordinator import TransactionCoordinator
from verticals.storefront.identity import Identity, require_admin, require_user
from verticals.storefront.ledger import InventoryLedger
from verticals.storefront.models.schemas import (
    BookCreate,
    BookResponse,
    BookSort,
    BookUpdate,
    PaginatedResponse,
    PurchaseResponse,
    RentalResponse,
    RentalStatus,
    RentalStatusUpdate,
    RentRequest,
)
from verticals.storefront.notifications import QUEUE_NAME as NOTIFICATION_QUEUE, NotificationSink
from verticals.storefront.reporting import ReportingService
from verticals.storefront.repository import (
    BookRepository,
    NotificationRepository,
    get_book_repository,
    get_notification_repository,
)

router = APIRouter()

# Failed notifications for this process
dead_letters = DeadLetterQueue(max_size=config.resilience.dead_letter_limit)


# ============================================================================
# Dependencies
# ============================================================================

async def current_identity() -> Identity | None:
    return get_current_identity()


def get_notifier(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> NotificationSink:
    return NotificationSink(factory, dead_letters)


def get_coordinator(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: NotificationSink = Depends(get_notifier),
) -> TransactionCoordinator:
    return TransactionCoordinator(factory, config=config, notifier=notifier)


def get_reporting(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ReportingService:
    return ReportingService(factory, config=config)


# ============================================================================
# Catalog Endpoints
# ============================================================================

@router.get("/books", response_model=PaginatedResponse)
async def list_books(
    query: Optional[str] = None,
    category: Optional[str] = None,
    author: Optional[str] = None,
    available_only: bool = False,
    sort_by: BookSort = BookSort.TITLE,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    repo: BookRepository = Depends(get_book_repository),
):
    """Search and list books with filtering, sorting and pagination."""
    books, total = await repo.search(
        query=query,
        category=category,
        author=author,
        available_only=available_only,
        sort_by=sort_by,
        page=page,
        limit=limit,
    )
    return {
        "data": books,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


@router.get("/books/facets")
async def book_facets(repo: BookRepository = Depends(get_book_repository)):
    """Distinct categories and authors for the catalog filters."""
    return {
        "categories": await repo.categories(),
        "authors": await repo.authors(),
    }


@router.get("/books/{book_id}", response_model=BookResponse)
async def get_book(
    book_id: str,
    repo: BookRepository = Depends(get_book_repository),
):
    book = await repo.get(book_id)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


@router.post("/books", status_code=201, response_model=BookResponse)
async def create_book(
    request: BookCreate,
    identity: Identity | None = Depends(current_identity),
    repo: BookRepository = Depends(get_book_repository),
):
    """Add a new title to the catalog (admin)."""
    require_admin(identity)
    return await repo.create(request.model_dump())


@router.patch("/books/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: str,
    request: BookUpdate,
    identity: Identity | None = Depends(current_identity),
    session: AsyncSession = Depends(get_session),
):
    """Edit a book (admin). Copy totals go through the inventory ledger."""
    require_admin(identity)
    updates = request.model_dump(exclude_unset=True)
    new_total = updates.pop("total_copies", None)

    if new_total is not None:
        await InventoryLedger(session).adjust_total(book_id, new_total)

    book = await BookRepository(session).update(book_id, updates)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


@router.delete("/books/{book_id}", status_code=204)
async def delete_book(
    book_id: str,
    identity: Identity | None = Depends(current_identity),
    repo: BookRepository = Depends(get_book_repository),
):
    """Remove a title (admin). Rental and purchase history is kept."""
    require_admin(identity)
    deleted = await repo.delete(book_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Book not found")


# ============================================================================
# Purchase / Rent / Return
# ============================================================================

@router.post("/books/{book_id}/purchase", status_code=201, response_model=PurchaseResponse)
async def purchase_book(
    book_id: str,
    identity: Identity | None = Depends(current_identity),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    return await coordinator.purchase(identity, book_id)


@router.post("/books/{book_id}/rent", status_code=201, response_model=RentalResponse)
async def rent_book(
    book_id: str,
    request: RentRequest,
    identity: Identity | None = Depends(current_identity),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    return await coordinator.rent(identity, book_id, request.rental_type)


@router.post("/rentals/{rental_id}/return", response_model=RentalResponse)
async def return_rental(
    rental_id: str,
    identity: Identity | None = Depends(current_identity),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    return await coordinator.return_rental(identity, rental_id)


# ============================================================================
# Current user
# ============================================================================

@router.get("/me/library")
async def my_library(
    identity: Identity | None = Depends(current_identity),
    reporting: ReportingService = Depends(get_reporting),
):
    """The caller's rentals (with effective status) and purchases."""
    return await reporting.user_library(identity)


@router.get("/me/notifications")
async def my_notifications(
    unread_only: bool = False,
    identity: Identity | None = Depends(current_identity),
    repo: NotificationRepository = Depends(get_notification_repository),
):
    identity = require_user(identity)
    notifications = await repo.get_for_user(identity.user_id, unread_only=unread_only)
    return {"data": notifications, "count": len(notifications)}


@router.post("/me/notifications/{notification_id}/read", status_code=204)
async def mark_notification_read(
    notification_id: str,
    identity: Identity | None = Depends(current_identity),
    repo: NotificationRepository = Depends(get_notification_repository),
):
    identity = require_user(identity)
    if not await repo.mark_read(notification_id, identity.user_id):
        raise HTTPException(status_code=404, detail="Notification not found")


# ============================================================================
# Admin
# ============================================================================

@router.get("/admin/rentals")
async def admin_rentals(
    status: Optional[RentalStatus] = None,
    search: Optional[str] = None,
    identity: Identity | None = Depends(current_identity),
    reporting: ReportingService = Depends(get_reporting),
):
    """All rentals; ``status`` filters on the effective (derived) status."""
    rentals = await reporting.list_rentals(identity, status=status, search=search)
    return {"data": rentals, "count": len(rentals)}


@router.patch("/admin/rentals/{rental_id}", response_model=RentalResponse)
async def admin_set_rental_status(
    rental_id: str,
    request: RentalStatusUpdate,
    identity: Identity | None = Depends(current_identity),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    return await coordinator.set_status(identity, rental_id, request.status)


@router.post("/admin/rentals/{rental_id}/reminder", status_code=202)
async def admin_send_reminder(
    rental_id: str,
    identity: Identity | None = Depends(current_identity),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    notification = await coordinator.send_reminder(identity, rental_id)
    return {"sent": notification is not None, "notification": notification}


@router.get("/admin/dashboard")
async def admin_dashboard(
    identity: Identity | None = Depends(current_identity),
    reporting: ReportingService = Depends(get_reporting),
):
    stats = await reporting.dashboard_stats(identity)
    activity = await reporting.recent_activity(identity)
    return {
        "stats": stats.model_dump(),
        "recent_activity": [entry.model_dump(mode="json") for entry in activity],
    }


@router.get("/admin/dead-letters")
async def admin_dead_letters(
    limit: int = Query(50, ge=1, le=500),
    identity: Identity | None = Depends(current_identity),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Pending notifications that could not be stored, oldest first."""
    require_admin(identity)
    pending = notifier.dead_letters.list_pending(NOTIFICATION_QUEUE, limit=limit)
    return {
        "data": [letter.to_dict() for letter in pending],
        "stats": notifier.dead_letters.get_stats(NOTIFICATION_QUEUE).to_dict(),
    }


@router.post("/admin/dead-letters/{letter_id}/replay")
async def admin_replay_dead_letter(
    letter_id: str,
    identity: Identity | None = Depends(current_identity),
    notifier: NotificationSink = Depends(get_notifier),
):
    require_admin(identity)
    notification = await notifier.replay(letter_id)
    return {"replayed": notification is not None, "notification": notification}


@router.post("/admin/dead-letters/{letter_id}/discard", status_code=204)
async def admin_discard_dead_letter(
    letter_id: str,
    reason: str = "",
    identity: Identity | None = Depends(current_identity),
    notifier: NotificationSink = Depends(get_notifier),
):
    require_admin(identity)
    notifier.discard(letter_id, reason)
