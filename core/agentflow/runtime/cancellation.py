"""
Cooperative cancellation for workflow runs.

A CancellationController is created by the RunRegistry for every run. Its
token is threaded through the ExecutionContext and handed to every
suspending call (inference, tools) so in-flight work can stop promptly
instead of only being abandoned at the next node boundary.

The token is safe to signal from any thread: the flag is a threading.Event
and asyncio waiters are woken through their own loop's call_soon_threadsafe.

Usage::

    controller = CancellationController()
    token = controller.token

    # In a provider
    text = await token.run(client.generate(prompt))

    # From the UI / another task
    controller.cancel()
"""

import asyncio
import threading
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class OperationCancelledError(Exception):
    """Raised when a cancellation-aware wait observes the cancel signal."""


class CancellationToken:
    """Read side of a cancellation signal."""

    def __init__(self) -> None:
        self._flag = threading.Event()
        self._lock = threading.Lock()
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._flag.is_set()

    def raise_if_cancelled(self) -> None:
        if self._flag.is_set():
            raise OperationCancelledError("Operation cancelled")

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._flag.is_set():
            return
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        with self._lock:
            if self._flag.is_set():
                return
            self._waiters.append((loop, future))
        try:
            await future
        finally:
            with self._lock:
                if (loop, future) in self._waiters:
                    self._waiters.remove((loop, future))

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await *awaitable*, aborting it if the token is cancelled first.

        Raises:
            OperationCancelledError: if cancellation wins the race
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        try:
            await task
        except (asyncio.CancelledError, Exception):
            # The aborted call's own outcome is irrelevant once cancelled
            pass
        raise OperationCancelledError("Operation cancelled")

    def _signal(self) -> bool:
        with self._lock:
            if self._flag.is_set():
                return False
            self._flag.set()
            waiters, self._waiters = self._waiters, []

        for loop, future in waiters:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(_resolve_future, future)
        return True


def _resolve_future(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)


class CancellationController:
    """Write side of a cancellation signal. Owned by the RunRegistry."""

    def __init__(self) -> None:
        self._token = CancellationToken()

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def is_cancelled(self) -> bool:
        return self._token.is_cancelled

    def cancel(self) -> bool:
        """Signal cancellation. Returns False if it was already signalled."""
        return self._token._signal()
