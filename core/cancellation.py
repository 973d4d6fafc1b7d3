"""Race an awaitable against a cancellation ``asyncio.Event``."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


async def run_cancellable(
    aw: Awaitable[T],
    cancel: asyncio.Event | None,
    on_cancel: Callable[[], BaseException],
) -> T:
    """Await ``aw`` unless ``cancel`` is set first.

    When the event wins, ``aw`` is cancelled and drained and the exception
    built by ``on_cancel`` is raised.  Cancelling the caller cancels ``aw``.
    """
    if cancel is None:
        return await aw
    if cancel.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise on_cancel()

    work = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for fut in (work, waiter):
            if not fut.done():
                fut.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await waiter

    if work.done() and not work.cancelled():
        return work.result()
    with contextlib.suppress(asyncio.CancelledError):
        await work
    raise on_cancel()
