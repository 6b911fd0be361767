"""Cancellation signals for network operations."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from .exceptions import OperationCancelledError

T = TypeVar("T")

# An operation is aborted once its signal is set.
AbortSignal = asyncio.Event


async def abortable(awaitable: Awaitable[T], signal: Optional[AbortSignal] = None) -> T:
    """
    Await ``awaitable`` unless ``signal`` fires first.

    Args:
        awaitable: Coroutine or future to run
        signal: Optional abort signal

    Returns:
        The awaitable's result

    Raises:
        OperationCancelledError: If the signal is set before the awaitable finishes
    """
    if signal is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if signal.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise OperationCancelledError("Operation aborted before it started")

    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)

    if task.cancelled():
        raise OperationCancelledError("Operation aborted")
    return task.result()
