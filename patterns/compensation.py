"""Compensating-action scope pattern.

Multi-step operations whose steps commit independently (reserve a copy, then
write a record) cannot rely on a single database transaction. Instead, each
committed step registers an undo action; if a later step raises, the undo
actions run in reverse order and the original exception propagates unchanged.

Usage::

    async with CompensationScope("purchase") as scope:
        reservation = await ledger.reserve(book_id)
        scope.on_failure(ledger.release, book_id)
        purchase = await create_purchase(reservation)

A failing undo action is logged and does not replace the original error.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class CompensatingAction:
    """An undo step registered after a committed forward step."""

    func: Callable[..., Awaitable[Any]]
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return getattr(self.func, "__qualname__", repr(self.func))


class CompensationScope:
    """Async context manager running registered undo actions on failure."""

    def __init__(self, operation: str):
        self.operation = operation
        self._actions: list[CompensatingAction] = []
        self.compensated: list[str] = []
        self.failed: list[str] = []

    def on_failure(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> None:
        """Register ``func(*args, **kwargs)`` to run if the scope exits with an error."""
        self._actions.append(CompensatingAction(func, args, kwargs))

    def discard(self) -> None:
        """Forget registered actions (the forward path is complete)."""
        self._actions.clear()

    async def __aenter__(self) -> "CompensationScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.discard()
            return False

        logger.warning(
            "%s failed with %s; running %d compensating action(s)",
            self.operation,
            exc_type.__name__,
            len(self._actions),
        )
        for action in reversed(self._actions):
            try:
                await action.func(*action.args, **action.kwargs)
                self.compensated.append(action.name)
            except Exception:
                self.failed.append(action.name)
                logger.error(
                    "Compensation %s for %s failed; state needs manual repair",
                    action.name,
                    self.operation,
                    exc_info=True,
                )
        self._actions.clear()
        return False
