"""
Dead Letter Queue — park side effects that failed.

Fire-and-forget writes (notifications) must never fail the request that
triggered them. When they do fail, the payload is captured here with the
error so an operator can inspect, replay or discard it.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import logging
import uuid

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DLQStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DISCARDED = "discarded"


@dataclass
class DeadLetter:
    """A failed side effect captured in the DLQ."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    queue_name: str = ""
    event_type: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    error: str = ""
    retry_count: int = 0
    status: DLQStatus = DLQStatus.PENDING
    created_at: datetime = field(default_factory=_now)
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "queue_name": self.queue_name,
            "event_type": self.event_type,
            "payload": self.payload,
            "error": self.error,
            "retry_count": self.retry_count,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass
class DLQStats:
    """Aggregate counts for a queue."""
    queue_name: str
    total: int = 0
    pending: int = 0
    resolved: int = 0
    discarded: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue_name": self.queue_name,
            "total": self.total,
            "pending": self.pending,
            "resolved": self.resolved,
            "discarded": self.discarded,
        }


class DeadLetterQueue:
    """In-memory DLQ holding at most ``max_size`` letters.

    When full, the oldest settled (resolved or discarded) letter is dropped
    first; only if every letter is still pending is the oldest pending one
    dropped, with a warning.
    """

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._letters: dict[str, DeadLetter] = {}

    def __len__(self) -> int:
        return len(self._letters)

    def _evict(self) -> None:
        settled = [dl for dl in self._letters.values() if dl.status != DLQStatus.PENDING]
        victim = min(settled or self._letters.values(), key=lambda dl: dl.created_at)
        if victim.status == DLQStatus.PENDING:
            logger.warning(
                "DLQ full (%d); dropping pending letter %s from %s",
                self.max_size, victim.id, victim.queue_name,
            )
        del self._letters[victim.id]

    def enqueue(
        self,
        queue_name: str,
        event_type: str,
        payload: dict[str, Any],
        error: str,
    ) -> DeadLetter:
        """Add a failed event to the DLQ."""
        letter = DeadLetter(
            queue_name=queue_name,
            event_type=event_type,
            payload=payload,
            error=error,
        )
        while len(self._letters) >= self.max_size:
            self._evict()
        self._letters[letter.id] = letter
        return letter

    def get(self, letter_id: str) -> DeadLetter | None:
        return self._letters.get(letter_id)

    def list_pending(self, queue_name: str | None = None, limit: int = 50) -> list[DeadLetter]:
        """Pending letters, oldest first."""
        results = [
            dl for dl in self._letters.values()
            if dl.status == DLQStatus.PENDING
            and (queue_name is None or dl.queue_name == queue_name)
        ]
        results.sort(key=lambda dl: dl.created_at)
        return results[:limit]

    def mark_resolved(self, letter_id: str) -> bool:
        letter = self._letters.get(letter_id)
        if not letter:
            return False
        letter.status = DLQStatus.RESOLVED
        letter.resolved_at = _now()
        return True

    def mark_discarded(self, letter_id: str, reason: str = "") -> bool:
        letter = self._letters.get(letter_id)
        if not letter:
            return False
        letter.status = DLQStatus.DISCARDED
        if reason:
            letter.error = f"{letter.error} | Discarded: {reason}"
        return True

    def get_stats(self, queue_name: str = "") -> DLQStats:
        letters = [
            dl for dl in self._letters.values()
            if not queue_name or dl.queue_name == queue_name
        ]
        return DLQStats(
            queue_name=queue_name or "all",
            total=len(letters),
            pending=sum(1 for dl in letters if dl.status == DLQStatus.PENDING),
            resolved=sum(1 for dl in letters if dl.status == DLQStatus.RESOLVED),
            discarded=sum(1 for dl in letters if dl.status == DLQStatus.DISCARDED),
        )
