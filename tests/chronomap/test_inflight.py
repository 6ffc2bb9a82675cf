# SPDX-License-Identifier: MIT
"""Tests for cancelable request handles."""

import asyncio

import pytest

from chronomap.errors import RequestCancelled
from chronomap.inflight import RequestSlot


async def _value(value, delay: float = 0):
    await asyncio.sleep(delay)
    return value


async def _fail():
    raise ValueError("boom")


@pytest.mark.anyio
class TestRequestSlot:
    """Test single-flight request slots."""

    async def test_wait_returns_result(self):
        slot = RequestSlot("test")
        handle = slot.start(_value(42))
        assert await handle.wait() == 42

    async def test_slot_released_after_wait(self):
        slot = RequestSlot("test")
        handle = slot.start(_value(1))
        assert slot.active is handle
        await handle.wait()
        assert slot.active is None

    async def test_start_cancels_previous(self):
        slot = RequestSlot("test")
        first = slot.start(_value("old", delay=10))
        second = slot.start(_value("new"))

        assert first.cancelled is True
        assert slot.active is second
        with pytest.raises(RequestCancelled) as exc_info:
            await first.wait()
        assert exc_info.value.kind == "test"
        assert await second.wait() == "new"

    async def test_cancel_after_completion_discards_result(self):
        """A finished request cancelled before its awaiter resumes yields RequestCancelled."""
        slot = RequestSlot("test")
        handle = slot.start(_value("stale"))
        while not handle.done():
            await asyncio.sleep(0)

        assert slot.cancel() is True
        with pytest.raises(RequestCancelled):
            await handle.wait()

    async def test_cancel_without_request(self):
        slot = RequestSlot("test")
        assert slot.cancel() is False

    async def test_errors_propagate(self):
        slot = RequestSlot("test")
        handle = slot.start(_fail())
        with pytest.raises(ValueError, match="boom"):
            await handle.wait()
        assert slot.active is None

    async def test_errors_of_cancelled_request_are_discarded(self):
        slot = RequestSlot("test")
        handle = slot.start(_fail())
        slot.cancel()
        with pytest.raises(RequestCancelled):
            await handle.wait()

    async def test_stale_release_keeps_newer_handle(self):
        slot = RequestSlot("test")
        first = slot.start(_value(1, delay=10))
        second = slot.start(_value(2, delay=10))
        with pytest.raises(RequestCancelled):
            await first.wait()
        assert slot.active is second
        slot.cancel()
        with pytest.raises(RequestCancelled):
            await second.wait()
