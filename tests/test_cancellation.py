"""Tests for core/cancellation.py."""

from __future__ import annotations

import asyncio

import pytest

from core.cancellation import run_cancellable


class _Cancelled(Exception):
    pass


@pytest.mark.asyncio
async def test_no_event_awaits_directly() -> None:
    async def work() -> int:
        return 7

    assert await run_cancellable(work(), None, _Cancelled) == 7


@pytest.mark.asyncio
async def test_work_wins() -> None:
    async def work() -> str:
        await asyncio.sleep(0)
        return "done"

    assert await run_cancellable(work(), asyncio.Event(), _Cancelled) == "done"


@pytest.mark.asyncio
async def test_event_wins_and_work_is_cancelled() -> None:
    state = {"cancelled": False}

    async def work() -> None:
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise

    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.01, cancel.set)
    with pytest.raises(_Cancelled):
        await run_cancellable(work(), cancel, _Cancelled)
    assert state["cancelled"]


@pytest.mark.asyncio
async def test_preset_event_never_starts_work() -> None:
    started = False

    async def work() -> None:
        nonlocal started
        started = True

    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(_Cancelled):
        await run_cancellable(work(), cancel, _Cancelled)
    assert not started


@pytest.mark.asyncio
async def test_work_error_propagates() -> None:
    async def work() -> None:
        raise KeyError("boom")

    with pytest.raises(KeyError):
        await run_cancellable(work(), asyncio.Event(), _Cancelled)
