"""
Circular byte buffer used by the message reassembler.

The buffer keeps explicit head (read cursor), tail (write cursor) and count
fields over a fixed-capacity bytearray. Capacity only changes by doubling
when a write does not fit, and unread content is preserved across growth.
"""

from __future__ import annotations

from pyharp.protocol.constants import ProtocolConstants


class RingBuffer:
    """
    Fixed-capacity circular byte buffer that doubles when full.

    Attributes:
        capacity: Current size of the backing storage.
        count: Number of unread bytes.
        head: Index of the next byte to read.
        tail: Index of the next byte to write.

    Example:
        >>> ring = RingBuffer(4)
        >>> ring.write(b"abc")
        >>> ring.read(2)
        b'ab'
        >>> ring.write(b"def")  # wraps around the end of the storage
        >>> ring.read(4)
        b'cdef'
    """

    __slots__ = ("_buffer", "_head", "_tail", "_count")

    def __init__(self, capacity: int = ProtocolConstants.DEFAULT_RING_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self._buffer = bytearray(capacity)
        self._head = 0
        self._tail = 0
        self._count = 0

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    @property
    def count(self) -> int:
        return self._count

    @property
    def head(self) -> int:
        return self._head

    @property
    def tail(self) -> int:
        return self._tail

    @property
    def free(self) -> int:
        """Number of bytes that can be written without growing."""
        return len(self._buffer) - self._count

    def __len__(self) -> int:
        return self._count

    def write(self, data: bytes | bytearray | memoryview) -> None:
        """
        Append bytes at the write cursor, doubling capacity as needed.

        Args:
            data: Bytes to append.
        """
        size = len(data)
        if size == 0:
            return
        if size > self.free:
            self._grow(self._count + size)

        capacity = len(self._buffer)
        first = min(size, capacity - self._tail)
        self._buffer[self._tail:self._tail + first] = data[:first]
        if first < size:
            self._buffer[0:size - first] = data[first:]
        self._tail = (self._tail + size) % capacity
        self._count += size

    def peek(self, offset: int = 0) -> int:
        """
        Get the byte at `offset` from the read cursor without consuming it.

        Raises:
            IndexError: If fewer than offset + 1 bytes are buffered.
        """
        if not 0 <= offset < self._count:
            raise IndexError(f"Offset {offset} out of range for {self._count} buffered bytes")
        return self._buffer[(self._head + offset) % len(self._buffer)]

    def copy(self, size: int) -> bytes:
        """
        Copy `size` bytes from the read cursor without consuming them.

        Raises:
            IndexError: If fewer than `size` bytes are buffered.
        """
        if not 0 <= size <= self._count:
            raise IndexError(f"Cannot copy {size} bytes, only {self._count} buffered")
        capacity = len(self._buffer)
        end = self._head + size
        if end <= capacity:
            return bytes(self._buffer[self._head:end])
        return bytes(self._buffer[self._head:]) + bytes(self._buffer[:end - capacity])

    def skip(self, size: int) -> None:
        """
        Advance the read cursor by `size` bytes.

        Raises:
            IndexError: If fewer than `size` bytes are buffered.
        """
        if not 0 <= size <= self._count:
            raise IndexError(f"Cannot skip {size} bytes, only {self._count} buffered")
        self._head = (self._head + size) % len(self._buffer)
        self._count -= size
        if self._count == 0:
            # Rewind so contiguous frames avoid the wrap-around copy
            self._head = self._tail = 0

    def read(self, size: int) -> bytes:
        """Copy and consume `size` bytes from the read cursor."""
        data = self.copy(size)
        self.skip(size)
        return data

    def clear(self) -> None:
        """Discard all buffered bytes, keeping the current capacity."""
        self._head = self._tail = self._count = 0

    def _grow(self, required: int) -> None:
        capacity = len(self._buffer)
        while capacity < required:
            capacity *= 2
        unread = self.copy(self._count)
        self._buffer = bytearray(capacity)
        self._buffer[:len(unread)] = unread
        self._head = 0
        self._tail = len(unread)

    def __repr__(self) -> str:
        return f"RingBuffer(count={self._count}, capacity={len(self._buffer)})"
