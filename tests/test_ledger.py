"""Test atomic reserve/release on the inventory ledger."""
import pytest

from core.database import get_session_context
from verticals.storefront.errors import InsufficientCopies, InvalidInventoryChange, NotFound
from verticals.storefront.ledger import InventoryLedger
from verticals.storefront.repository import BookRepository


@pytest.mark.asyncio
async def test_reserve_decrements_and_snapshots_prices(session_factory, make_book, load_book):
    book = await make_book(total_copies=2, available_copies=2)
    async with get_session_context(session_factory) as session:
        reservation = await InventoryLedger(session).reserve(book["id"])

    assert reservation.available_copies == 1
    assert reservation.purchase_price == 1200.0
    assert reservation.rental_price_2weeks == 500.0
    assert (await load_book(book["id"]))["available_copies"] == 1


@pytest.mark.asyncio
async def test_reserve_without_stock_fails(session_factory, make_book, load_book):
    book = await make_book(total_copies=1, available_copies=0)
    with pytest.raises(InsufficientCopies):
        async with get_session_context(session_factory) as session:
            await InventoryLedger(session).reserve(book["id"])
    assert (await load_book(book["id"]))["available_copies"] == 0


@pytest.mark.asyncio
async def test_reserve_unknown_book(session_factory):
    with pytest.raises(NotFound):
        async with get_session_context(session_factory) as session:
            await InventoryLedger(session).reserve("missing")


@pytest.mark.asyncio
async def test_release_increments(session_factory, make_book, load_book):
    book = await make_book(total_copies=2, available_copies=1)
    async with get_session_context(session_factory) as session:
        assert await InventoryLedger(session).release(book["id"]) is True
    assert (await load_book(book["id"]))["available_copies"] == 2


@pytest.mark.asyncio
async def test_release_is_capped_at_total(session_factory, make_book, load_book):
    book = await make_book(total_copies=2, available_copies=2)
    async with get_session_context(session_factory) as session:
        assert await InventoryLedger(session).release(book["id"]) is False
    assert (await load_book(book["id"]))["available_copies"] == 2


@pytest.mark.asyncio
async def test_release_unknown_book(session_factory):
    with pytest.raises(NotFound):
        async with get_session_context(session_factory) as session:
            await InventoryLedger(session).release("missing")


@pytest.mark.asyncio
async def test_adjust_total_shifts_available(session_factory, make_book, load_book):
    book = await make_book(total_copies=3, available_copies=1)
    async with get_session_context(session_factory) as session:
        available = await InventoryLedger(session).adjust_total(book["id"], 5)

    assert available == 3
    stored = await load_book(book["id"])
    assert stored["total_copies"] == 5
    assert stored["available_copies"] == 3


@pytest.mark.asyncio
async def test_adjust_total_rejects_below_loaned_copies(session_factory, make_book, load_book):
    # 2 of 3 copies are out
    book = await make_book(total_copies=3, available_copies=1)
    with pytest.raises(InvalidInventoryChange):
        async with get_session_context(session_factory) as session:
            await InventoryLedger(session).adjust_total(book["id"], 1)
    assert (await load_book(book["id"]))["total_copies"] == 3


@pytest.mark.asyncio
async def test_adjust_total_rejects_negative(session_factory, make_book):
    book = await make_book()
    with pytest.raises(InvalidInventoryChange):
        async with get_session_context(session_factory) as session:
            await InventoryLedger(session).adjust_total(book["id"], -1)


@pytest.mark.asyncio
async def test_keyed_reserve_is_applied_once(session_factory, make_book, load_book):
    book = await make_book(total_copies=3, available_copies=3)
    async with get_session_context(session_factory) as session:
        first = await InventoryLedger(session).reserve(book["id"], key="purchase-1")
    async with get_session_context(session_factory) as session:
        again = await InventoryLedger(session).reserve(book["id"], key="purchase-1")

    assert again == first
    assert (await load_book(book["id"]))["available_copies"] == 2


@pytest.mark.asyncio
async def test_keyed_reserve_survives_price_change(session_factory, make_book):
    book = await make_book()
    async with get_session_context(session_factory) as session:
        await InventoryLedger(session).reserve(book["id"], key="rent-1")
    async with get_session_context(session_factory) as session:
        await BookRepository(session).update(book["id"], {"purchase_price": 9999.0})
    async with get_session_context(session_factory) as session:
        again = await InventoryLedger(session).reserve(book["id"], key="rent-1")

    assert again.purchase_price == 1200.0


@pytest.mark.asyncio
async def test_keyed_release_is_applied_once(session_factory, make_book, load_book):
    book = await make_book(total_copies=3, available_copies=1)
    for _ in range(2):
        async with get_session_context(session_factory) as session:
            assert await InventoryLedger(session).release(book["id"], key="return-1") is True

    assert (await load_book(book["id"]))["available_copies"] == 2


@pytest.mark.asyncio
async def test_failed_keyed_reserve_leaves_no_record(session_factory, make_book, load_book):
    book = await make_book(total_copies=1, available_copies=0)
    with pytest.raises(InsufficientCopies):
        async with get_session_context(session_factory) as session:
            await InventoryLedger(session).reserve(book["id"], key="purchase-2")
    async with get_session_context(session_factory) as session:
        await InventoryLedger(session).release(book["id"])
    async with get_session_context(session_factory) as session:
        reservation = await InventoryLedger(session).reserve(book["id"], key="purchase-2")

    assert reservation.available_copies == 0
    assert (await load_book(book["id"]))["available_copies"] == 0
