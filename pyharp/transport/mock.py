"""
In-memory Harp transport for tests.

MockTransport stands in for a device link so that AsyncDevice and message
observers can be exercised without hardware. Incoming bytes are fed
explicitly, queued as responses to the next writes, or generated by a
callback from each written command.

Example:
    >>> from pyharp.transport import MockTransport
    >>> from pyharp import AsyncDevice
    >>>
    >>> mock = MockTransport()
    >>> mock.add_response(HarpMessage.from_uint16(0, MessageType.READ, 1216))
    >>>
    >>> async with mock:
    ...     device = AsyncDevice(mock)
    ...     assert await device.read_who_am_i() == 1216
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable, Iterable, Union

from pyharp.exceptions import TransportError
from pyharp.protocol.constants import ProtocolConstants
from pyharp.protocol.message import HarpMessage
from pyharp.transport.abc import HarpTransport

Response = Union[bytes, bytearray, HarpMessage, Iterable[HarpMessage]]
"""Bytes, a message, or several messages delivered as one chunk."""

_EOF = object()


def _to_bytes(response: Response) -> bytes:
    if isinstance(response, (bytes, bytearray)):
        return bytes(response)
    if isinstance(response, HarpMessage):
        return response.message_bytes
    return b"".join(message.message_bytes for message in response)


class MockTransport(HarpTransport):
    """
    In-memory transport that plays the device side of a Harp link.

    Incoming data travels through the real reassembler and broadcast, so
    observers see exactly what they would on a live link. All written data
    is recorded for verification in tests.

    Attributes:
        written_data: Every frame written, in order.
        written_messages: Written data decoded as messages.

    Example:
        >>> mock = MockTransport()
        >>> async with mock:
        ...     mock.feed(HarpMessage.from_byte(32, MessageType.EVENT, 1))
        ...     await mock.write(command)
        ...     mock.assert_written(command.message_bytes)
    """

    def __init__(
        self,
        port_name: str = "mock://test",
        *,
        ignore_errors: bool = False,
        read_buffer_size: int = ProtocolConstants.DEFAULT_READ_BUFFER_SIZE,
    ) -> None:
        """
        Create an in-memory transport.

        Args:
            port_name: Name reported in logs and errors.
            ignore_errors: Drop error-flagged Event messages.
            read_buffer_size: Maximum number of bytes taken per read.
        """
        super().__init__(ignore_errors=ignore_errors, read_buffer_size=read_buffer_size)
        self._port_name = port_name
        self._incoming: asyncio.Queue[object] | None = None
        self._pending = b""
        self._responses: deque[bytes] = deque()
        self._written_data: list[bytes] = []
        self._response_callback: Callable[[HarpMessage], Response | None] | None = None
        self._stream_open = False

    @property
    def port_name(self) -> str:
        """Get the mock port name."""
        return self._port_name

    @property
    def written_data(self) -> list[bytes]:
        """Get all data written to the transport."""
        return self._written_data.copy()

    @property
    def written_messages(self) -> list[HarpMessage]:
        """Get all written frames as messages."""
        return [HarpMessage(data) for data in self._written_data]

    @property
    def last_written(self) -> bytes | None:
        """Get the most recently written data."""
        return self._written_data[-1] if self._written_data else None

    # ===== Incoming data =====

    def feed(self, data: Response) -> None:
        """
        Deliver bytes to the read loop as one chunk.

        Args:
            data: Bytes or messages as they would arrive on the wire.
        """
        self._queue().put_nowait(_to_bytes(data))

    def feed_eof(self) -> None:
        """Signal end of stream (an unexpected disconnect on a live link)."""
        self._queue().put_nowait(_EOF)

    def fail(self, error: BaseException) -> None:
        """Make the next read raise `error`."""
        self._queue().put_nowait(error)

    def add_response(self, response: Response) -> None:
        """
        Queue a response to deliver after the next write.

        Responses are delivered in FIFO order, one per write.

        Args:
            response: Bytes or messages to deliver.
        """
        self._responses.append(_to_bytes(response))

    def add_responses(self, *responses: Response) -> None:
        """
        Queue multiple responses, one per upcoming write.

        Args:
            *responses: Responses to add.
        """
        for response in responses:
            self.add_response(response)

    def set_response_callback(
        self,
        callback: Callable[[HarpMessage], Response | None] | None,
    ) -> None:
        """
        Set a callback to dynamically generate responses.

        The callback receives each written command and returns the data to
        deliver. If it returns None, the next queued response is used instead.

        Args:
            callback: Function that takes the written message and returns
                the response.
        """
        self._response_callback = callback

    def clear(self) -> None:
        """Clear all written data and pending responses."""
        self._written_data.clear()
        self._responses.clear()

    def clear_written(self) -> None:
        """Clear only the written data history."""
        self._written_data.clear()

    # ===== Byte stream primitives =====

    def _queue(self) -> asyncio.Queue[object]:
        if self._incoming is None:
            self._incoming = asyncio.Queue()
        return self._incoming

    async def _open_stream(self) -> None:
        self._stream_open = True

    async def _read_chunk(self, size: int) -> bytes:
        if not self._pending:
            item = await self._queue().get()
            if item is _EOF:
                return b""
            if isinstance(item, BaseException):
                raise item
            self._pending = item

        chunk, self._pending = self._pending[:size], self._pending[size:]
        return chunk

    async def _write_bytes(self, data: bytes) -> None:
        if not self._stream_open:
            raise TransportError("Mock transport not open")

        self._written_data.append(data)

        response: Response | None = None
        if self._response_callback is not None:
            response = self._response_callback(HarpMessage(data))
        if response is None and self._responses:
            response = self._responses.popleft()
        if response is not None:
            self.feed(response)

    async def _close_stream(self) -> None:
        self._stream_open = False

    # ===== Assertions =====

    def assert_written(self, expected: bytes | HarpMessage, index: int = -1) -> None:
        """
        Assert that specific data was written.

        Args:
            expected: Expected bytes or message.
            index: Index in written_data list (-1 for last).

        Raises:
            AssertionError: If data doesn't match.
        """
        if not self._written_data:
            raise AssertionError("No data written to mock transport")

        expected = bytes(expected)
        actual = self._written_data[index]
        if actual != expected:
            raise AssertionError(
                f"Written data mismatch: expected {expected.hex(':')}, got {actual.hex(':')}"
            )

    def assert_write_count(self, expected: int) -> None:
        """
        Assert number of write operations.

        Args:
            expected: Expected number of writes.

        Raises:
            AssertionError: If count doesn't match.
        """
        actual = len(self._written_data)
        if actual != expected:
            raise AssertionError(f"Write count mismatch: expected {expected}, got {actual}")
