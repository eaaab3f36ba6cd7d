"""
Harp protocol message types, payload types and constants.

Based on the Harp binary protocol definition:

    byte 0      : MessageType (1=Read, 2=Write, 3=Event), bit3 = error flag
    byte 1      : Length (bytes from address through checksum, inclusive)
    byte 2      : Address (register id)
    byte 3      : Port (255 for host-issued commands)
    byte 4      : PayloadType
    bytes 5..10 : [optional] Timestamp (4-byte LE seconds + 2-byte LE 32us ticks)
    bytes N..   : Payload (little-endian elements)
    last byte   : Checksum (sum of all prior bytes, mod 256)
"""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Final


class MessageType(IntEnum):
    """
    Harp message types.

    The message type is stored in the two low bits of the first frame byte.
    Bit 3 of the same byte is the error flag and is not part of the type.
    """

    READ = 0x01
    """Read the value of a register."""

    WRITE = 0x02
    """Write the value of a register."""

    EVENT = 0x03
    """Unsolicited notification from the device."""


class PayloadType(IntFlag):
    """
    Harp payload types.

    Bits 0-3 hold the element size in bytes (1, 2, 4 or 8). Bit 7 marks
    signed integers, bit 6 marks IEEE-754 floating point and bit 4 marks
    a payload prefixed by a timestamp.
    """

    U8 = 0x01
    S8 = 0x80 | 0x01
    U16 = 0x02
    S16 = 0x80 | 0x02
    U32 = 0x04
    S32 = 0x80 | 0x04
    U64 = 0x08
    S64 = 0x80 | 0x08
    FLOAT = 0x40 | 0x04

    TIMESTAMP = 0x10

    TIMESTAMPED_U8 = 0x10 | 0x01
    TIMESTAMPED_S8 = 0x10 | 0x80 | 0x01
    TIMESTAMPED_U16 = 0x10 | 0x02
    TIMESTAMPED_S16 = 0x10 | 0x80 | 0x02
    TIMESTAMPED_U32 = 0x10 | 0x04
    TIMESTAMPED_S32 = 0x10 | 0x80 | 0x04
    TIMESTAMPED_U64 = 0x10 | 0x08
    TIMESTAMPED_S64 = 0x10 | 0x80 | 0x08
    TIMESTAMPED_FLOAT = 0x10 | 0x40 | 0x04

    @property
    def element_size(self) -> int:
        """Size in bytes of a single payload element."""
        return int(self) & ProtocolConstants.TYPE_SIZE_MASK

    @property
    def is_timestamped(self) -> bool:
        """Check if the payload is prefixed by a timestamp."""
        return bool(int(self) & ProtocolConstants.TIMESTAMP_FLAG)

    @property
    def base_type(self) -> PayloadType:
        """Payload type with the timestamp flag cleared."""
        return PayloadType(int(self) & ~ProtocolConstants.TIMESTAMP_FLAG & 0xFF)

    @property
    def struct_code(self) -> str:
        """
        Get the struct format character for one payload element.

        Raises:
            ValueError: If the payload type does not describe a supported element.
        """
        try:
            return _STRUCT_CODES[int(self.base_type)]
        except KeyError:
            raise ValueError(f"Unsupported payload type 0x{int(self):02X}") from None

    def with_timestamp(self) -> PayloadType:
        """Payload type with the timestamp flag set."""
        return PayloadType(int(self) | ProtocolConstants.TIMESTAMP_FLAG)


class ProtocolConstants:
    """
    Harp protocol constants.

    Offsets, masks and defaults used by the codec, reassembler and
    transports. All values are class-level constants.
    """

    # ===== Frame Layout =====

    BASE_OFFSET: Final[int] = 5
    """Offset of the payload in a message without timestamp."""

    TIMESTAMP_SIZE: Final[int] = 6
    """Size of the timestamp prefix (4 bytes seconds + 2 bytes ticks)."""

    TIMESTAMPED_OFFSET: Final[int] = BASE_OFFSET + TIMESTAMP_SIZE
    """Offset of the payload in a timestamped message."""

    CHECKSUM_SIZE: Final[int] = 1
    """Size of the trailing checksum."""

    MIN_MESSAGE_SIZE: Final[int] = BASE_OFFSET + CHECKSUM_SIZE
    """Smallest well-formed message (header and checksum, empty payload)."""

    MIN_LENGTH_FIELD: Final[int] = MIN_MESSAGE_SIZE - 2
    """Smallest value of the length field (address, port, type, checksum)."""

    MAX_LENGTH_FIELD: Final[int] = 0xFF
    """Largest value of the 8-bit length field."""

    DEVICE_PORT: Final[int] = 0xFF
    """Port used by host-issued commands addressing the device itself."""

    # ===== Masks and Flags =====

    ERROR_MASK: Final[int] = 0x08
    """Error flag in the message type byte."""

    TYPE_SIZE_MASK: Final[int] = 0x0F
    """Element size bits in the payload type byte."""

    TIMESTAMP_FLAG: Final[int] = 0x10
    """Payload type flag for timestamped payloads."""

    RESERVED_FLAG: Final[int] = 0x20
    """Payload type bit that must never be set."""

    FLOAT_FLAG: Final[int] = 0x40
    """Payload type flag for floating point elements."""

    SIGNED_FLAG: Final[int] = 0x80
    """Payload type flag for signed elements."""

    # ===== Timestamp =====

    TICK_SECONDS: Final[float] = 32e-6
    """Resolution of the fractional timestamp field (32 microseconds)."""

    MAX_TIMESTAMP_SECONDS: Final[int] = 0xFFFFFFFF
    """Largest value of the seconds field."""

    # ===== Serial Port Configuration =====

    DEFAULT_BAUD_RATE: Final[int] = 1_000_000
    """Default baud rate for Harp devices."""

    DEFAULT_READ_BUFFER_SIZE: Final[int] = 1_048_576
    """Default maximum number of bytes taken from the stream per read."""

    DEFAULT_RING_CAPACITY: Final[int] = 4096
    """Initial capacity of the reassembler ring buffer."""

    # ===== Timeouts =====

    DEFAULT_COMMAND_TIMEOUT: Final[float | None] = None
    """Default reply timeout for commands (None waits indefinitely)."""


_STRUCT_CODES: Final[dict[int, str]] = {
    PayloadType.U8: "B",
    PayloadType.S8: "b",
    PayloadType.U16: "H",
    PayloadType.S16: "h",
    PayloadType.U32: "I",
    PayloadType.S32: "i",
    PayloadType.U64: "Q",
    PayloadType.S64: "q",
    PayloadType.FLOAT: "f",
}

VALID_MESSAGE_TYPE_BYTES: Final[frozenset[int]] = frozenset(
    int(message_type) | error
    for message_type in MessageType
    for error in (0, ProtocolConstants.ERROR_MASK)
)
"""First-byte values that can start a frame (message type with optional error flag)."""


def is_valid_payload_type(value: int) -> bool:
    """
    Check if a payload type byte is well-formed.

    The element size must be 1, 2, 4 or 8, bit 5 must be clear, signed and
    float must not both be set, and float is only valid with 4-byte elements.

    Args:
        value: Raw payload type byte.

    Returns:
        True if the payload type byte is well-formed.
    """
    size = value & ProtocolConstants.TYPE_SIZE_MASK
    if size not in (1, 2, 4, 8):
        return False
    if value & ProtocolConstants.RESERVED_FLAG:
        return False
    if value & ProtocolConstants.FLOAT_FLAG:
        if value & ProtocolConstants.SIGNED_FLAG or size != 4:
            return False
    return True
