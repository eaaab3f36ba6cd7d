"""
Abstract transport interface for Harp communication.

A transport owns an underlying byte stream and a message reassembler. Once
opened, a background read loop converts incoming bytes into messages and
broadcasts each of them, in wire order, to every subscribed observer.

The transport layer is responsible for:
- Opening/closing the underlying byte stream
- Writing command frames
- Reassembling and broadcasting received messages
- Reporting link failures to subscribers

Implementations:
- SerialTransport: pyserial-asyncio based serial port
- StreamTransport: any asyncio StreamReader/StreamWriter pair (e.g. TCP)
- FileTransport: playback of a recorded binary file
- MockTransport: in-memory transport for testing without hardware
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from pyharp.exceptions import TransportError
from pyharp.protocol.constants import ProtocolConstants
from pyharp.protocol.message import HarpMessage
from pyharp.protocol.reassembler import MessageReassembler
from pyharp.transport.observable import MessageBroadcaster, MessageStream, Observer, Subscription

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


class HarpTransport(ABC):
    """
    Abstract base class for Harp transports.

    Subclasses implement the four byte-stream primitives (`_open_stream`,
    `_read_chunk`, `_write_bytes`, `_close_stream`); the base class runs the
    read loop and the broadcast.

    Transports support async context manager protocol for safe resource
    management:

        async with SerialTransport("/dev/ttyUSB0") as transport:
            with transport.subscribe(observer):
                await transport.write(command)

    A transport is opened at most once. After `close()`, or after the link
    fails, it must be replaced by a new instance.

    Attributes:
        completes_on_eof: Treat end of stream as a clean completion rather
            than a link failure.
    """

    completes_on_eof: ClassVar[bool] = False

    def __init__(
        self,
        *,
        ignore_errors: bool = False,
        read_buffer_size: int = ProtocolConstants.DEFAULT_READ_BUFFER_SIZE,
    ) -> None:
        """
        Initialize the transport.

        Args:
            ignore_errors: Drop error-flagged Event messages instead of
                broadcasting them.
            read_buffer_size: Maximum number of bytes taken per read.
        """
        if read_buffer_size <= 0:
            raise ValueError(f"read_buffer_size must be positive, got {read_buffer_size}")
        self._reassembler = MessageReassembler(ignore_errors=ignore_errors)
        self._broadcaster = MessageBroadcaster()
        self._read_buffer_size = read_buffer_size
        self._loop: asyncio.AbstractEventLoop | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._close_task: asyncio.Task[None] | None = None
        self._open_lock = asyncio.Lock()
        self._opened = False
        self._closed = False

    # ===== Properties =====

    @property
    def is_open(self) -> bool:
        """Check if the read loop is running and writes are accepted."""
        return self._opened and not self._closed

    @property
    def is_closed(self) -> bool:
        """Check if the transport has been closed or has failed."""
        return self._closed

    @property
    @abstractmethod
    def port_name(self) -> str:
        """
        Get the transport identifier.

        Returns:
            Port name, address or path (e.g., "/dev/ttyUSB0", "COM3").
        """
        ...

    @property
    def ignore_errors(self) -> bool:
        return self._reassembler.ignore_errors

    @property
    def reassembler(self) -> MessageReassembler:
        """The reassembler owned by the read loop."""
        return self._reassembler

    # ===== Byte stream primitives =====

    @abstractmethod
    async def _open_stream(self) -> None:
        """
        Open the underlying byte stream.

        Raises:
            TransportError: If the stream cannot be opened.
        """
        ...

    @abstractmethod
    async def _read_chunk(self, size: int) -> bytes:
        """
        Wait for at least one byte and return what is available.

        Args:
            size: Maximum number of bytes to return.

        Returns:
            Up to `size` bytes, or an empty result at end of stream.
        """
        ...

    @abstractmethod
    async def _write_bytes(self, data: bytes) -> None:
        """Write raw bytes to the underlying stream."""
        ...

    @abstractmethod
    async def _close_stream(self) -> None:
        """Release the underlying stream. Must be safe to call twice."""
        ...

    # ===== Public API =====

    async def open(self) -> None:
        """
        Open the byte stream and start the read loop.

        Calling open on an already open transport has no effect, and
        overlapping calls open the stream once.

        Raises:
            TransportError: If the transport was closed or cannot be opened.
        """
        async with self._open_lock:
            if self._closed:
                raise TransportError(f"Transport {self.port_name} has been closed")
            if self._opened:
                return

            await self._open_stream()
            if self._closed:
                await self._release_stream()
                raise TransportError(f"Transport {self.port_name} was closed while opening")
            self._loop = asyncio.get_running_loop()
            self._opened = True
            self._read_task = self._loop.create_task(
                self._read_loop(), name=f"harp-read-{self.port_name}"
            )
        logger.info("Opened %s", self.port_name)

    async def write(self, message: HarpMessage | bytes) -> None:
        """
        Write a command to the device.

        Writes are not queued: the frame goes straight to the underlying
        stream and may interleave with the read loop.

        Args:
            message: Message or complete frame bytes to send.

        Raises:
            TransportError: If the transport is not open or the write fails.
        """
        if not self.is_open:
            raise TransportError(f"Transport {self.port_name} is not open")

        data = bytes(message)
        logger.debug("Sent: %s", data.hex(":"))
        await self._write_bytes(data)

    def subscribe(self, observer: Observer) -> Subscription:
        """
        Receive every message read from the device.

        Args:
            observer: Object implementing on_next, on_error and on_completed.

        Returns:
            Subscription whose `dispose` stops the delivery.
        """
        return self._broadcaster.subscribe(observer)

    def messages(self) -> MessageStream:
        """
        Iterate asynchronously over received messages.

        Messages are buffered from the moment this method is called.

        Example:
            >>> async with transport.messages() as stream:
            ...     async for message in stream:
            ...         print(message)
        """
        return MessageStream(self._broadcaster)

    async def close(self) -> None:
        """
        Stop the read loop and release the byte stream.

        Subscribers receive a clean completion. Safe to call multiple
        times (idempotent).
        """
        if self._closed:
            return
        self._closed = True

        task, self._read_task = self._read_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._release_stream()
        self._broadcaster.complete()
        logger.info("Closed %s", self.port_name)

    def close_nowait(self) -> concurrent.futures.Future[None] | None:
        """
        Request the transport to close without awaiting it.

        Safe to call from any thread, including from inside an observer.
        A transport that was never opened is closed immediately.

        Returns:
            A future completing when the transport is closed when called
            from another thread, otherwise None.
        """
        if self._closed:
            return None
        loop = self._loop
        if loop is None or loop.is_closed():
            self._closed = True
            self._broadcaster.complete()
            logger.info("Closed %s", self.port_name)
            return None

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            if self._close_task is None:
                self._close_task = loop.create_task(self.close())
            return None
        return asyncio.run_coroutine_threadsafe(self.close(), loop)

    # ===== Read loop =====

    async def _read_loop(self) -> None:
        try:
            while True:
                data = await self._read_chunk(self._read_buffer_size)
                if not data:
                    if self.completes_on_eof:
                        logger.info("End of stream on %s", self.port_name)
                        await self._finish(None)
                        return
                    raise TransportError(f"Connection to {self.port_name} closed unexpectedly")

                for message in self._reassembler.feed(data):
                    logger.debug("Received: %r", message)
                    await self._dispatch(message)

        except asyncio.CancelledError:
            raise
        except TransportError as e:
            logger.error("Transport %s failed: %s", self.port_name, e)
            await self._finish(e)
        except Exception as e:
            logger.error("Transport %s failed: %s", self.port_name, e)
            error = TransportError(f"Read from {self.port_name} failed: {e}")
            error.__cause__ = e
            await self._finish(error)

    async def _dispatch(self, message: HarpMessage) -> None:
        """Broadcast one message. Subclasses may delay delivery."""
        self._broadcaster.publish(message)

    async def _finish(self, error: TransportError | None) -> None:
        if self._closed:
            return
        self._closed = True
        self._read_task = None
        await self._release_stream()
        if error is None:
            self._broadcaster.complete()
        else:
            self._broadcaster.error(error)

    async def _release_stream(self) -> None:
        try:
            await self._close_stream()
        except (OSError, TransportError) as e:
            logger.debug("Error while closing %s: %s", self.port_name, e)

    # ===== Context manager =====

    async def __aenter__(self) -> HarpTransport:
        """Async context manager entry - opens the transport."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit - closes the transport."""
        await self.close()

    def __repr__(self) -> str:
        status = "open" if self.is_open else ("closed" if self._closed else "new")
        return f"{type(self).__name__}({self.port_name!r}, {status})"
