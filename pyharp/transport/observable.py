"""
Message broadcast to multiple observers.

Every message read from a transport is delivered to all current observers
in wire order. An observer receives zero or more `on_next` calls followed
by at most one terminal call: `on_completed` when the transport is closed
on purpose, or `on_error` when the link fails.

Subscribing and disposing are safe from any thread. Publication iterates
over a snapshot of the observer list, so an observer may dispose its own
subscription from inside `on_next`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Callable, Protocol

if TYPE_CHECKING:
    from types import TracebackType

    from pyharp.protocol.message import HarpMessage

logger = logging.getLogger(__name__)


class Observer(Protocol):
    """Receiver of broadcast messages."""

    def on_next(self, message: HarpMessage) -> None: ...

    def on_error(self, error: BaseException) -> None: ...

    def on_completed(self) -> None: ...


class CallbackObserver:
    """
    Observer built from plain callables.

    Example:
        >>> received = []
        >>> observer = CallbackObserver(received.append)
    """

    def __init__(
        self,
        on_next: Callable[[HarpMessage], None],
        on_error: Callable[[BaseException], None] | None = None,
        on_completed: Callable[[], None] | None = None,
    ) -> None:
        self._on_next = on_next
        self._on_error = on_error
        self._on_completed = on_completed

    def on_next(self, message: HarpMessage) -> None:
        self._on_next(message)

    def on_error(self, error: BaseException) -> None:
        if self._on_error is not None:
            self._on_error(error)

    def on_completed(self) -> None:
        if self._on_completed is not None:
            self._on_completed()


class Subscription:
    """
    Handle returned by `subscribe`; disposing it detaches the observer.

    Disposing is idempotent. Subscriptions are also context managers:

        with transport.subscribe(observer):
            ...
    """

    def __init__(self, broadcaster: MessageBroadcaster, observer: Observer) -> None:
        self._broadcaster = broadcaster
        self._observer = observer
        self._disposed = False

    @property
    def observer(self) -> Observer:
        return self._observer

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Stop delivering messages to the observer."""
        if self._disposed:
            return
        self._disposed = True
        self._broadcaster._remove(self._observer)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.dispose()


class MessageBroadcaster:
    """
    Thread-safe fan-out of messages to a list of observers.

    Once terminated with `complete` or `error`, the broadcaster ignores
    further messages, and late subscribers immediately receive the same
    terminal notification.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._observers: list[Observer] = []
        self._terminated = False
        self._error: BaseException | None = None

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    @property
    def terminated(self) -> bool:
        return self._terminated

    def subscribe(self, observer: Observer) -> Subscription:
        """
        Attach an observer.

        Args:
            observer: Object implementing on_next, on_error and on_completed.

        Returns:
            Subscription whose `dispose` detaches the observer.
        """
        subscription = Subscription(self, observer)
        with self._lock:
            if not self._terminated:
                self._observers.append(observer)
                return subscription
            error = self._error

        subscription._disposed = True
        if error is not None:
            observer.on_error(error)
        else:
            observer.on_completed()
        return subscription

    def publish(self, message: HarpMessage) -> None:
        """Deliver a message to every current observer."""
        with self._lock:
            if self._terminated:
                return
            observers = list(self._observers)

        for observer in observers:
            try:
                observer.on_next(message)
            except Exception:
                logger.warning("Observer %r raised, detaching it", observer, exc_info=True)
                self._remove(observer)

    def complete(self) -> None:
        """Notify every observer that no more messages will arrive."""
        for observer in self._terminate(None):
            try:
                observer.on_completed()
            except Exception:
                logger.warning("Observer %r raised on completion", observer, exc_info=True)

    def error(self, error: BaseException) -> None:
        """Notify every observer that the message source failed."""
        for observer in self._terminate(error):
            try:
                observer.on_error(error)
            except Exception:
                logger.warning("Observer %r raised on error", observer, exc_info=True)

    def _terminate(self, error: BaseException | None) -> list[Observer]:
        with self._lock:
            if self._terminated:
                return []
            self._terminated = True
            self._error = error
            observers, self._observers = self._observers, []
        return observers

    def _remove(self, observer: Observer) -> None:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass


_END = object()


class MessageStream:
    """
    Async iterator over broadcast messages.

    Messages are queued from the moment the stream is created. Iteration
    ends when the source completes and raises the source error when it
    fails. Must be created and consumed on the event loop that publishes.

    Example:
        >>> async with transport.messages() as stream:
        ...     async for message in stream:
        ...         print(message)
    """

    def __init__(self, broadcaster: MessageBroadcaster) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._subscription = broadcaster.subscribe(self)

    def on_next(self, message: HarpMessage) -> None:
        self._queue.put_nowait(message)

    def on_error(self, error: BaseException) -> None:
        self._queue.put_nowait(error)

    def on_completed(self) -> None:
        self._queue.put_nowait(_END)

    def close(self) -> None:
        """Stop receiving messages; queued messages remain readable."""
        if not self._subscription.disposed:
            self._subscription.dispose()
            self._queue.put_nowait(_END)

    def __aiter__(self) -> MessageStream:
        return self

    async def __anext__(self) -> HarpMessage:
        item = await self._queue.get()
        if item is _END:
            # Keep the stream exhausted for repeated calls
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._queue.put_nowait(_END)
            raise item
        return item

    async def __aenter__(self) -> MessageStream:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
