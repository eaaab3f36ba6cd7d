"""
Harp message reassembly from a raw byte stream.

Reads from a serial port or file return arbitrary chunks: a chunk may hold
part of a message, several messages, or noise. The reassembler buffers the
chunks in a ring buffer and scans for complete frames:

1. At the read cursor, wait for the type and length bytes
2. Reject impossible type bytes or lengths immediately
3. Wait until `length + 2` bytes are buffered
4. Verify checksum and payload type
   - Valid: emit the message and advance past the frame
   - Invalid: advance exactly one byte and scan again (resynchronization)

The output depends only on the bytes fed, never on how they were chunked.
A reassembler has a single owner (the transport read loop) and must not be
fed concurrently.
"""

from __future__ import annotations

import logging
from enum import Enum, auto

from pyharp.protocol.checksums import validate_checksum
from pyharp.protocol.constants import (
    VALID_MESSAGE_TYPE_BYTES,
    MessageType,
    ProtocolConstants,
)
from pyharp.protocol.message import HarpMessage
from pyharp.protocol.ring_buffer import RingBuffer

logger = logging.getLogger(__name__)


class FrameParseResult(Enum):
    """
    Result codes for a single frame scan at the read cursor.
    """

    SUCCESS = auto()
    """A valid frame was extracted."""

    EMPTY_BUFFER = auto()
    """Buffer is empty, no data to parse."""

    INCOMPLETE_FRAME = auto()
    """Buffer contains partial frame data, more bytes needed."""

    INVALID_CHECKSUM = auto()
    """Candidate frame checksum did not match (one byte discarded)."""

    INVALID_FORMAT = auto()
    """Type, length or payload type byte is impossible (one byte discarded)."""


class MessageReassembler:
    """
    Converts an unbounded byte stream into validated Harp messages.

    Attributes:
        ignore_errors: Drop error-flagged Event messages instead of emitting them.
        bytes_discarded: Total bytes skipped while resynchronizing.
        frames_emitted: Total messages returned by `feed`.
        frames_dropped: Valid messages suppressed by `ignore_errors`.

    Example:
        >>> reassembler = MessageReassembler()
        >>> frame = HarpMessage.from_byte(42, MessageType.WRITE, 23).message_bytes
        >>> reassembler.feed(frame[:3])
        []
        >>> reassembler.feed(frame[3:])
        [HarpMessage(WRITE, address=42, payload=1 bytes)]
    """

    def __init__(
        self,
        ignore_errors: bool = False,
        capacity: int = ProtocolConstants.DEFAULT_RING_CAPACITY,
    ) -> None:
        """
        Initialize the reassembler.

        Args:
            ignore_errors: Drop error-flagged Event messages.
            capacity: Initial ring buffer capacity in bytes.
        """
        self.ignore_errors = ignore_errors
        self._ring = RingBuffer(capacity)
        self._resyncing = False
        self._episode_discarded = 0
        self.bytes_discarded = 0
        self.frames_emitted = 0
        self.frames_dropped = 0

    @property
    def buffered(self) -> int:
        """Number of bytes waiting for the rest of a frame."""
        return self._ring.count

    @property
    def capacity(self) -> int:
        """Current ring buffer capacity."""
        return self._ring.capacity

    def feed(self, data: bytes | bytearray | memoryview) -> list[HarpMessage]:
        """
        Append received bytes and extract every complete message.

        Args:
            data: Newly read bytes (any length, including empty).

        Returns:
            Messages completed by this chunk, in wire order.
        """
        self._ring.write(data)
        messages: list[HarpMessage] = []
        while True:
            result, message = self.scan()
            if result is FrameParseResult.SUCCESS:
                if self._should_drop(message):
                    self.frames_dropped += 1
                    logger.debug("Dropped device error event: %r", message)
                    continue
                self.frames_emitted += 1
                messages.append(message)
            elif result in (FrameParseResult.EMPTY_BUFFER, FrameParseResult.INCOMPLETE_FRAME):
                return messages

    def scan(self) -> tuple[FrameParseResult, HarpMessage | None]:
        """
        Attempt to extract one frame at the read cursor.

        On an invalid candidate exactly one byte is discarded, so repeated
        calls walk the buffer one position at a time until a valid frame
        or the end of the buffered data is found.

        Returns:
            Tuple of (result, message). The message is None unless the
            result is SUCCESS.
        """
        ring = self._ring
        if ring.count == 0:
            return FrameParseResult.EMPTY_BUFFER, None
        if ring.count < 2:
            return FrameParseResult.INCOMPLETE_FRAME, None

        if ring.peek(0) not in VALID_MESSAGE_TYPE_BYTES:
            self._discard()
            return FrameParseResult.INVALID_FORMAT, None

        length = ring.peek(1)
        if length < ProtocolConstants.MIN_LENGTH_FIELD:
            self._discard()
            return FrameParseResult.INVALID_FORMAT, None

        size = length + 2
        if ring.count < size:
            return FrameParseResult.INCOMPLETE_FRAME, None

        frame = ring.copy(size)
        if not validate_checksum(frame):
            self._discard(frame)
            return FrameParseResult.INVALID_CHECKSUM, None

        message = HarpMessage(frame)
        if not message.is_valid:
            self._discard(frame)
            return FrameParseResult.INVALID_FORMAT, None

        ring.skip(size)
        if self._resyncing:
            logger.debug("Resynchronized after discarding %d bytes", self._episode_discarded)
            self._resyncing = False
            self._episode_discarded = 0
        return FrameParseResult.SUCCESS, message

    def reset(self) -> None:
        """Discard all buffered bytes and resynchronization state."""
        self._ring.clear()
        self._resyncing = False
        self._episode_discarded = 0

    def _should_drop(self, message: HarpMessage) -> bool:
        return self.ignore_errors and message.error and message.message_type == MessageType.EVENT

    def _discard(self, candidate: bytes | None = None) -> None:
        if not self._resyncing:
            self._resyncing = True
            logger.warning("Not able to parse a Harp message, resynchronizing")
            if candidate is not None:
                logger.debug("Rejected candidate frame: %s", candidate.hex(":"))
        self._ring.skip(1)
        self._episode_discarded += 1
        self.bytes_discarded += 1

    def __repr__(self) -> str:
        return (
            f"MessageReassembler(buffered={self._ring.count}, "
            f"emitted={self.frames_emitted}, discarded={self.bytes_discarded})"
        )
