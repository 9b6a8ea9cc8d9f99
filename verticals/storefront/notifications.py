"""Notification sink — fire-and-forget advisory messages.

send() writes the notification in its own unit of work so a failure can never
roll back or block the rental flow that triggered it. Failures are logged and
parked in the dead-letter queue with the full payload; an administrator can
replay or discard them later.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import get_session_context
from core.resilience import DeadLetterQueue, DLQStatus
from verticals.storefront.errors import InvalidStateTransition, NotFound
from verticals.storefront.models.schemas import NotificationKind
from verticals.storefront.repository import NotificationRepository

logger = logging.getLogger(__name__)

QUEUE_NAME = "notifications"


class NotificationSink:
    """Writes notification records; never raises from send()."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dead_letters: DeadLetterQueue | None = None,
    ):
        self.session_factory = session_factory
        self.dead_letters = dead_letters if dead_letters is not None else DeadLetterQueue()

    async def _store(self, payload: dict) -> dict:
        async with get_session_context(self.session_factory) as session:
            return await NotificationRepository(session).create(payload)

    async def send(
        self,
        user_id: str,
        title: str,
        message: str,
        kind: NotificationKind | str,
    ) -> dict | None:
        """Store a notification. Returns it, or None if it was parked."""
        payload = {
            "user_id": user_id,
            "title": title,
            "message": message,
            "type": NotificationKind(kind).value,
        }
        try:
            notification = await self._store(payload)
        except Exception as e:
            logger.error("Notification for user %s not stored", user_id, exc_info=True)
            self.dead_letters.enqueue(
                queue_name=QUEUE_NAME,
                event_type=payload["type"],
                payload=payload,
                error=str(e),
            )
            return None

        logger.info("Notification %s sent to user %s", payload["type"], user_id)
        return notification

    async def replay(self, letter_id: str) -> dict | None:
        """Retry a parked notification.

        Returns the stored notification and resolves the letter, or None if
        the store failed again (the letter stays pending with the new error).
        """
        letter = self.dead_letters.get(letter_id)
        if letter is None or letter.queue_name != QUEUE_NAME:
            raise NotFound("dead letter", letter_id)
        if letter.status != DLQStatus.PENDING:
            raise InvalidStateTransition(letter.status.value, "replayed")

        letter.retry_count += 1
        try:
            notification = await self._store(letter.payload)
        except Exception as e:
            logger.warning("Replay of dead letter %s failed: %s", letter_id, e)
            letter.error = str(e)
            return None

        self.dead_letters.mark_resolved(letter_id)
        logger.info("Dead letter %s replayed to user %s", letter_id, letter.payload["user_id"])
        return notification

    def discard(self, letter_id: str, reason: str = "") -> None:
        letter = self.dead_letters.get(letter_id)
        if letter is None or letter.queue_name != QUEUE_NAME:
            raise NotFound("dead letter", letter_id)
        if letter.status != DLQStatus.PENDING:
            raise InvalidStateTransition(letter.status.value, "discarded")
        self.dead_letters.mark_discarded(letter_id, reason)
        logger.info("Dead letter %s discarded: %s", letter_id, reason or "no reason given")
