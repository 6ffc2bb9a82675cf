"""
Cancelable request handles.

Each resource kind (area data, markers) owns one RequestSlot. Starting a new
request on a slot cancels the previous handle first, so at most one request
per kind is outstanding. The awaiter of a cancelled handle gets
RequestCancelled whatever the underlying request produced, which is what
keeps a slow stale response from touching shared state.
"""

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

from loguru import logger

from chronomap.errors import RequestCancelled


class RequestHandle:
    """A running request that can be cancelled and awaited."""

    def __init__(
        self,
        kind: str,
        task: asyncio.Task,
        on_settled: Callable[["RequestHandle"], None] | None = None,
    ):
        self.kind = kind
        self._task = task
        self._cancelled = False
        self._on_settled = on_settled

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """
        Cancel the request.

        Also valid after the task finished but before its awaiter resumed:
        the result is then discarded.
        """
        self._cancelled = True
        self._task.cancel()

    async def wait(self) -> Any:
        """
        Await the request result.

        Raises:
            RequestCancelled: if cancel() was called before the awaiter resumed
            Exception: whatever the request raised, if it was not cancelled
        """
        try:
            try:
                result = await self._task
            except asyncio.CancelledError:
                if self._cancelled:
                    raise RequestCancelled(self.kind) from None
                # The awaiting task itself is being cancelled
                raise
            except Exception:
                if self._cancelled:
                    raise RequestCancelled(self.kind) from None
                raise

            if self._cancelled:
                raise RequestCancelled(self.kind)
            return result
        finally:
            if self._on_settled is not None:
                self._on_settled(self)


class RequestSlot:
    """Holds the single in-flight request for one resource kind."""

    def __init__(self, kind: str):
        self.kind = kind
        self._handle: RequestHandle | None = None

    @property
    def active(self) -> RequestHandle | None:
        return self._handle

    def start(self, coro: Coroutine) -> RequestHandle:
        """Cancel any prior request of this kind, then start `coro` as a new one."""
        self.cancel()

        task = asyncio.ensure_future(coro)
        handle = RequestHandle(self.kind, task, on_settled=self._release)
        self._handle = handle
        return handle

    def cancel(self) -> bool:
        """Cancel the in-flight request, if any. Returns True if one was cancelled."""
        handle = self._handle
        self._handle = None
        if handle is None:
            return False
        handle.cancel()
        logger.debug(f"Cancelled in-flight {self.kind} request")
        return True

    def _release(self, handle: RequestHandle) -> None:
        if self._handle is handle:
            self._handle = None
