"""Test retry policy, compensation scope, dead-letter queue and notification sink."""
import logging

import pytest

from core.resilience import DeadLetterQueue, DLQStatus, RetryPolicy
from patterns.compensation import CompensationScope
from verticals.storefront.errors import (
    InsufficientCopies,
    InvalidStateTransition,
    NotFound,
    TransientStoreError,
)
from verticals.storefront.models.schemas import NotificationKind
from verticals.storefront.notifications import QUEUE_NAME, NotificationSink


# ---------------------------------------------------------------------------
# RetryPolicy
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_retry_until_success():
    policy = RetryPolicy(max_attempts=3, backoff_base=0, retry_on=(TransientStoreError,))
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise TransientStoreError("blip")
        return "ok"

    assert await policy.call(flaky) == "ok"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts():
    policy = RetryPolicy(max_attempts=2, backoff_base=0, retry_on=(TransientStoreError,))
    calls = []

    async def down():
        calls.append(1)
        raise TransientStoreError("down")

    with pytest.raises(TransientStoreError):
        await policy.call(down)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_business_errors_are_not_retried():
    policy = RetryPolicy(max_attempts=5, backoff_base=0, retry_on=(TransientStoreError,))
    calls = []

    async def sold_out():
        calls.append(1)
        raise InsufficientCopies("b1")

    with pytest.raises(InsufficientCopies):
        await policy.call(sold_out)
    assert len(calls) == 1


def test_retry_backoff_is_capped():
    policy = RetryPolicy(backoff_base=0.1, backoff_max=0.3)
    assert policy.backoff(0) == 0.1
    assert policy.backoff(1) == 0.2
    assert policy.backoff(5) == 0.3


def test_retry_requires_one_attempt():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


# ---------------------------------------------------------------------------
# CompensationScope
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_compensation_runs_in_reverse_and_reraises():
    undone = []

    async def undo(step):
        undone.append(step)

    with pytest.raises(RuntimeError, match="boom"):
        async with CompensationScope("checkout") as scope:
            scope.on_failure(undo, "reserve")
            scope.on_failure(undo, step="charge")
            raise RuntimeError("boom")

    assert undone == ["charge", "reserve"]
    assert len(scope.compensated) == 2


@pytest.mark.asyncio
async def test_compensation_not_run_on_success():
    undone = []

    async def undo():
        undone.append(1)

    async with CompensationScope("checkout") as scope:
        scope.on_failure(undo)

    assert undone == []


@pytest.mark.asyncio
async def test_failing_compensation_keeps_original_error(caplog):
    async def broken_undo():
        raise ConnectionError("store gone")

    caplog.set_level(logging.ERROR, logger="patterns.compensation")
    with pytest.raises(ValueError, match="original"):
        async with CompensationScope("return") as scope:
            scope.on_failure(broken_undo)
            raise ValueError("original")

    assert scope.failed == [broken_undo.__qualname__]
    assert "manual repair" in caplog.text


# ---------------------------------------------------------------------------
# DeadLetterQueue
# ---------------------------------------------------------------------------

def test_dlq_enqueue_and_resolve():
    dlq = DeadLetterQueue()
    letter = dlq.enqueue("notifications", "rental_reminder", {"user_id": "alice"}, "timeout")

    assert dlq.get(letter.id).status == DLQStatus.PENDING
    assert [dl.id for dl in dlq.list_pending("notifications")] == [letter.id]

    assert dlq.mark_resolved(letter.id)
    assert dlq.list_pending() == []
    assert dlq.get(letter.id).resolved_at is not None


def test_dlq_discard_and_stats():
    dlq = DeadLetterQueue()
    a = dlq.enqueue("notifications", "rental_overdue", {}, "err")
    dlq.enqueue("notifications", "rental_reminder", {}, "err")
    dlq.enqueue("other", "x", {}, "err")

    assert dlq.mark_discarded(a.id, reason="user deleted")
    assert "user deleted" in dlq.get(a.id).error
    assert not dlq.mark_discarded("missing")

    stats = dlq.get_stats("notifications")
    assert (stats.total, stats.pending, stats.discarded) == (2, 1, 1)
    assert dlq.get_stats().total == 3


# ---------------------------------------------------------------------------
# NotificationSink
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sink_stores_notification(sink):
    notification = await sink.send("alice", "Rental reminder", "Due soon", NotificationKind.RENTAL_REMINDER)

    assert notification["user_id"] == "alice"
    assert notification["type"] == "rental_reminder"
    assert notification["is_read"] is False


@pytest.mark.asyncio
async def test_sink_failure_is_parked_not_raised():
    def unavailable_factory():
        raise ConnectionError("store unreachable")

    dead_letters = DeadLetterQueue()
    sink = NotificationSink(unavailable_factory, dead_letters)

    result = await sink.send("bob", "Rental overdue", "Please return", "rental_overdue")

    assert result is None
    pending = dead_letters.list_pending(QUEUE_NAME)
    assert len(pending) == 1
    assert pending[0].payload["user_id"] == "bob"
    assert pending[0].event_type == "rental_overdue"
    assert "store unreachable" in pending[0].error


def test_dlq_drops_settled_letters_first_when_full():
    dlq = DeadLetterQueue(max_size=2)
    old = dlq.enqueue("notifications", "rental_reminder", {}, "err")
    kept = dlq.enqueue("notifications", "rental_reminder", {}, "err")
    dlq.mark_resolved(kept.id)

    newest = dlq.enqueue("notifications", "rental_overdue", {}, "err")

    assert len(dlq) == 2
    assert dlq.get(kept.id) is None
    assert dlq.get(old.id) is not None
    assert dlq.get(newest.id) is not None


def test_dlq_drops_oldest_pending_when_nothing_settled(caplog):
    dlq = DeadLetterQueue(max_size=2)
    oldest = dlq.enqueue("notifications", "rental_reminder", {}, "err")
    dlq.enqueue("notifications", "rental_reminder", {}, "err")

    with caplog.at_level(logging.WARNING):
        dlq.enqueue("notifications", "rental_reminder", {}, "err")

    assert len(dlq) == 2
    assert dlq.get(oldest.id) is None
    assert "DLQ full" in caplog.text


def test_dlq_requires_room_for_one_letter():
    with pytest.raises(ValueError):
        DeadLetterQueue(max_size=0)


@pytest.mark.asyncio
async def test_sink_replay_stores_and_resolves(session_factory):
    dead_letters = DeadLetterQueue()
    letter = dead_letters.enqueue(
        QUEUE_NAME,
        "rental_overdue",
        {"user_id": "bob", "title": "Rental overdue", "message": "Please return", "type": "rental_overdue"},
        "database is locked",
    )
    sink = NotificationSink(session_factory, dead_letters)

    notification = await sink.replay(letter.id)

    assert notification["user_id"] == "bob"
    assert notification["type"] == "rental_overdue"
    assert letter.status == DLQStatus.RESOLVED
    assert letter.retry_count == 1


@pytest.mark.asyncio
async def test_sink_failed_replay_stays_pending():
    def unavailable_factory():
        raise ConnectionError("store still unreachable")

    dead_letters = DeadLetterQueue()
    sink = NotificationSink(unavailable_factory, dead_letters)
    await sink.send("bob", "Rental overdue", "Please return", "rental_overdue")
    letter = dead_letters.list_pending(QUEUE_NAME)[0]

    assert await sink.replay(letter.id) is None
    assert letter.status == DLQStatus.PENDING
    assert letter.retry_count == 1
    assert "still unreachable" in letter.error


@pytest.mark.asyncio
async def test_sink_replay_and_discard_check_the_letter(sink):
    with pytest.raises(NotFound):
        await sink.replay("missing")
    with pytest.raises(NotFound):
        sink.discard("missing")

    other = sink.dead_letters.enqueue("payments", "refund", {}, "err")
    with pytest.raises(NotFound):
        await sink.replay(other.id)

    letter = sink.dead_letters.enqueue(QUEUE_NAME, "rental_reminder", {}, "err")
    sink.discard(letter.id, reason="duplicate")
    assert letter.status == DLQStatus.DISCARDED
    with pytest.raises(InvalidStateTransition):
        await sink.replay(letter.id)
