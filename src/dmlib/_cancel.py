"""Cooperative cancellation for network round-trips and poll pauses.

``run_cancellable`` races an awaitable against an :class:`asyncio.Event`.
If the event fires first the awaitable's task is cancelled (aborting an
in-flight request or upload stream) and :class:`OperationCancelledError`
is raised.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from dmlib.errors import OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_cancellable(
    awaitable: Awaitable[T],
    cancel: asyncio.Event | None,
    what: str,
) -> T:
    """Await *awaitable* unless *cancel* is set first.

    Args:
        awaitable: The suspension point (request, upload, sleep).
        cancel: Caller-owned event; ``None`` disables the race.
        what: Short description used in the error and log message.

    Raises:
        OperationCancelledError: If *cancel* is (or becomes) set before
            *awaitable* completes.
    """
    if cancel is None:
        return await awaitable

    if cancel.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        logger.info("Cancelled before %s", what)
        raise OperationCancelledError(f"cancelled before {what}")

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task.cancelled() and cancel.is_set():
        logger.info("Cancelled during %s", what)
        raise OperationCancelledError(f"cancelled during {what}")
    return task.result()
