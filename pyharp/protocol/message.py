"""
Harp message encoding and decoding.

A Harp message is a self-delimited binary frame:

    [type][length][address][port][payload type][timestamp?][payload][checksum]

- Length counts the bytes from address through checksum, inclusive
- The timestamp (4-byte LE seconds + 2-byte LE count of 32us ticks) is
  present iff bit 4 of the payload type is set
- The payload is a sequence of fixed-width little-endian elements
- The checksum is the sum of all prior bytes, modulo 256

HarpMessage wraps the raw frame bytes. Decoding never raises: callers
check `is_valid` before trusting the typed payload accessors, which raise
PayloadTypeError when the requested shape does not match the payload.

Example:
    >>> message = HarpMessage.from_byte(42, MessageType.WRITE, 23)
    >>> message.message_bytes
    b'\\x02\\x05*\\xff\\x01\\x17H'
    >>> message.get_payload_byte()
    23
"""

from __future__ import annotations

import math
import struct
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from pyharp.exceptions import PayloadTypeError, ProtocolError
from pyharp.protocol.checksums import calculate_checksum, update_checksum
from pyharp.protocol.constants import (
    MessageType,
    PayloadType,
    ProtocolConstants,
    is_valid_payload_type,
)

T = TypeVar("T")

Number = Union[int, float]

_TIMESTAMP_STRUCT = struct.Struct("<IH")


@dataclass(frozen=True)
class Timestamped(Generic[T]):
    """
    A payload value paired with the message timestamp.

    Attributes:
        value: The decoded payload value.
        seconds: Timestamp in seconds.
    """

    value: T
    seconds: float

    def __iter__(self) -> Iterator[object]:
        yield self.value
        yield self.seconds

    def __str__(self) -> str:
        return f"{self.value}@{self.seconds}"


def encode_timestamp(timestamp: float) -> bytes:
    """
    Encode a timestamp as 4-byte LE seconds plus 2-byte LE 32us ticks.

    The seconds are truncated to the integer part and the fractional
    remainder is rounded to the nearest 32 microsecond tick.

    Raises:
        ProtocolError: If the timestamp is not finite, negative or too large.
    """
    if not math.isfinite(timestamp):
        raise ProtocolError(f"Timestamp must be finite, got {timestamp}")
    if timestamp < 0:
        raise ProtocolError(f"Timestamp cannot be negative, got {timestamp}")
    seconds = int(timestamp)
    if seconds > ProtocolConstants.MAX_TIMESTAMP_SECONDS:
        raise ProtocolError(f"Timestamp seconds out of range: {seconds}")
    ticks = round((timestamp - seconds) / ProtocolConstants.TICK_SECONDS)
    return _TIMESTAMP_STRUCT.pack(seconds, ticks)


def decode_timestamp(data: bytes | bytearray | memoryview, offset: int = 0) -> float:
    """Decode a 6-byte timestamp field into seconds."""
    seconds, ticks = _TIMESTAMP_STRUCT.unpack_from(data, offset)
    return seconds + ticks * ProtocolConstants.TICK_SECONDS


def encode(
    address: int,
    message_type: MessageType | int,
    payload_type: PayloadType | int,
    payload: bytes | bytearray | memoryview = b"",
    timestamp: float | None = None,
    *,
    port: int = ProtocolConstants.DEVICE_PORT,
    error: bool = False,
) -> bytes:
    """
    Encode a complete Harp frame from raw payload bytes.

    Args:
        address: Register address (0-255).
        message_type: Read, Write or Event.
        payload_type: Element type of the payload. The timestamp flag is
            added automatically when a timestamp is given.
        payload: Raw little-endian payload bytes.
        timestamp: Optional timestamp in seconds.
        port: Port byte (255 for host-issued commands).
        error: Whether to set the error flag in the message type byte.

    Returns:
        The complete frame, including length and checksum.

    Raises:
        ProtocolError: If any field is out of range or the payload size does
            not match the payload type.
    """
    _check_byte("address", address)
    _check_byte("port", port)
    message_type = MessageType(message_type)
    payload_type = int(payload_type)
    if not is_valid_payload_type(payload_type):
        raise ProtocolError(f"Invalid payload type 0x{payload_type:02X}")

    if timestamp is None and PayloadType(payload_type).is_timestamped:
        raise ProtocolError("Timestamped payload type requires a timestamp")

    element_size = payload_type & ProtocolConstants.TYPE_SIZE_MASK
    if len(payload) % element_size != 0:
        raise ProtocolError(
            f"Payload size {len(payload)} is not a multiple of element size {element_size}"
        )

    header_size = ProtocolConstants.BASE_OFFSET
    if timestamp is not None:
        payload_type = int(PayloadType(payload_type).with_timestamp())
        header_size = ProtocolConstants.TIMESTAMPED_OFFSET

    total_size = header_size + len(payload) + ProtocolConstants.CHECKSUM_SIZE
    length = total_size - 2
    if length > ProtocolConstants.MAX_LENGTH_FIELD:
        raise ProtocolError(f"Payload too large: message length {length} exceeds 255")

    frame = bytearray(total_size)
    frame[0] = int(message_type) | (ProtocolConstants.ERROR_MASK if error else 0)
    frame[1] = length
    frame[2] = address
    frame[3] = port
    frame[4] = payload_type
    if timestamp is not None:
        frame[ProtocolConstants.BASE_OFFSET:header_size] = encode_timestamp(timestamp)
    frame[header_size:header_size + len(payload)] = payload
    update_checksum(frame)
    return bytes(frame)


def pack_payload(payload_type: PayloadType | int, values: Iterable[Number]) -> bytes:
    """
    Pack payload values as little-endian elements of the given type.

    Raises:
        ProtocolError: If a value does not fit the element type.
    """
    code = PayloadType(payload_type).struct_code
    values = list(values)
    try:
        return struct.pack(f"<{len(values)}{code}", *values)
    except struct.error as e:
        raise ProtocolError(f"Cannot pack {values!r} as {PayloadType(payload_type).base_type.name}: {e}") from e


def _check_byte(name: str, value: int) -> None:
    if not 0 <= value <= 0xFF:
        raise ProtocolError(f"{name.capitalize()} must be 0-255, got {value}")


def _normalize_values(values: tuple) -> Sequence[Number]:
    # Accept both from_uint16(addr, type, 1, 2) and from_uint16(addr, type, [1, 2])
    if len(values) == 1 and isinstance(values[0], (list, tuple, bytes, bytearray, memoryview)):
        return list(values[0])
    return list(values)


class HarpMessage:
    """
    A single message of the Harp protocol.

    Wraps the full binary representation of the message. Instances are
    immutable and compare equal by their bytes.

    Attributes:
        message_bytes: The complete frame as received or encoded.
        message_type: Read, Write or Event (raw int if unrecognized).
        address: Register address.
        port: Port byte.
        payload_type: Payload element type, including the timestamp flag.
        error: Whether the device flagged this message as an error report.
        is_valid: Whether the bytes form a conformant Harp message.
    """

    __slots__ = ("_bytes",)

    def __init__(self, message_bytes: bytes | bytearray | memoryview) -> None:
        """
        Initialize a message from its full binary representation.

        Args:
            message_bytes: The complete frame bytes. Invalid frames are
                accepted; check `is_valid` before reading the payload.
        """
        self._bytes = bytes(message_bytes)

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> HarpMessage:
        """Decode a frame. Never raises; check `is_valid` on the result."""
        return cls(data)

    # ===== Frame Fields =====

    @property
    def message_bytes(self) -> bytes:
        """Get the full binary representation of the message."""
        return self._bytes

    @property
    def message_type(self) -> MessageType | int:
        """Get the message type as MessageType if recognized, else raw int."""
        raw = self._bytes[0] & ~ProtocolConstants.ERROR_MASK
        try:
            return MessageType(raw)
        except ValueError:
            return raw

    @property
    def length(self) -> int:
        """Get the value of the length field."""
        return self._bytes[1]

    @property
    def address(self) -> int:
        """Get the address of the register the message refers to."""
        return self._bytes[2]

    @property
    def port(self) -> int:
        """Get the port byte (255 when the message refers to the device itself)."""
        return self._bytes[3]

    @property
    def payload_type(self) -> PayloadType:
        """Get the type of data available in the message payload."""
        return PayloadType(self._bytes[4])

    @property
    def error(self) -> bool:
        """Check if this message is an error report from the device."""
        return bool(self._bytes[0] & ProtocolConstants.ERROR_MASK)

    @property
    def checksum(self) -> int:
        """Get the checksum byte."""
        return self._bytes[-1]

    @property
    def is_timestamped(self) -> bool:
        """Check if the message payload contains time information."""
        return bool(self._bytes[4] & ProtocolConstants.TIMESTAMP_FLAG)

    @property
    def is_valid(self) -> bool:
        """
        Check if the bytes represent a conformant Harp message.

        Validates the message type, length field, payload type flags and
        checksum. This is a pure function of the message bytes.
        """
        data = self._bytes
        if len(data) < ProtocolConstants.MIN_MESSAGE_SIZE:
            return False
        if not isinstance(self.message_type, MessageType):
            return False
        if data[1] != len(data) - 2:
            return False
        if not is_valid_payload_type(data[4]):
            return False
        if data[4] & ProtocolConstants.TIMESTAMP_FLAG and len(data) < (
            ProtocolConstants.TIMESTAMPED_OFFSET + ProtocolConstants.CHECKSUM_SIZE
        ):
            return False
        return data[-1] == calculate_checksum(data[:-1])

    def is_match(
        self,
        address: int,
        message_type: MessageType | None = None,
        payload_type: PayloadType | None = None,
    ) -> bool:
        """
        Check if the message matches the specified address and optional types.

        Args:
            address: The address to test for a match.
            message_type: Optional message type to test for a match.
            payload_type: Optional payload type to test for a match.
        """
        if self.address != address:
            return False
        if message_type is not None and self.message_type != message_type:
            return False
        return payload_type is None or self.payload_type == payload_type

    # ===== Timestamp =====

    def try_get_timestamp(self) -> float | None:
        """Get the timestamp in seconds, or None if the message has none."""
        if not self.is_timestamped:
            return None
        return decode_timestamp(self._bytes, ProtocolConstants.BASE_OFFSET)

    def get_timestamp(self) -> float:
        """
        Get the timestamp of the message payload, in seconds.

        Raises:
            PayloadTypeError: If the message does not have a timestamped payload.
        """
        timestamp = self.try_get_timestamp()
        if timestamp is None:
            raise PayloadTypeError("This Harp message does not have a timestamped payload")
        return timestamp

    @property
    def timestamp(self) -> float | None:
        """Get the timestamp in seconds, or None if the message has none."""
        return self.try_get_timestamp()

    # ===== Payload Access =====

    @property
    def payload_offset(self) -> int:
        """Offset of the payload within the message bytes."""
        if self.is_timestamped:
            return ProtocolConstants.TIMESTAMPED_OFFSET
        return ProtocolConstants.BASE_OFFSET

    @property
    def payload(self) -> bytes:
        """Get a copy of the raw payload bytes."""
        return self._bytes[self.payload_offset:-ProtocolConstants.CHECKSUM_SIZE]

    def get_payload_array(self, payload_type: PayloadType | None = None) -> list[Number]:
        """
        Get all payload elements.

        Args:
            payload_type: Element type used to reinterpret the payload.
                Defaults to the message's own payload type.

        Returns:
            List of decoded elements, in payload order.

        Raises:
            PayloadTypeError: If the payload size is not a multiple of the
                element size.
        """
        element_type = PayloadType(payload_type if payload_type is not None else self.payload_type)
        try:
            code = element_type.struct_code
        except ValueError as e:
            raise PayloadTypeError(str(e)) from None
        payload = self.payload
        size = element_type.element_size
        if len(payload) % size != 0:
            raise PayloadTypeError(
                f"Payload of {len(payload)} bytes is not a multiple of "
                f"{element_type.base_type.name} element size {size}"
            )
        return list(struct.unpack(f"<{len(payload) // size}{code}", payload))

    def get_timestamped_payload_array(
        self,
        payload_type: PayloadType | None = None,
    ) -> Timestamped[list[Number]]:
        """Get all payload elements together with the message timestamp."""
        return Timestamped(self.get_payload_array(payload_type), self.get_timestamp())

    def _get_scalar(self, payload_type: PayloadType) -> Number:
        size = payload_type.element_size
        actual_size = self._bytes[4] & ProtocolConstants.TYPE_SIZE_MASK
        if actual_size != size:
            raise PayloadTypeError(
                f"Payload element size is {actual_size} bytes, "
                f"cannot read as {payload_type.name} ({size} bytes)"
            )
        payload = self.payload
        if len(payload) != size:
            raise PayloadTypeError(
                f"Payload has {len(payload) // size if size else 0} elements, "
                f"expected a single {payload_type.name} value"
            )
        return struct.unpack(f"<{payload_type.struct_code}", payload)[0]

    def get_payload_byte(self) -> int:
        """Get the payload as a single 8-bit unsigned integer."""
        return self._get_scalar(PayloadType.U8)

    def get_payload_sbyte(self) -> int:
        """Get the payload as a single 8-bit signed integer."""
        return self._get_scalar(PayloadType.S8)

    def get_payload_uint16(self) -> int:
        """Get the payload as a single 16-bit unsigned integer."""
        return self._get_scalar(PayloadType.U16)

    def get_payload_int16(self) -> int:
        """Get the payload as a single 16-bit signed integer."""
        return self._get_scalar(PayloadType.S16)

    def get_payload_uint32(self) -> int:
        """Get the payload as a single 32-bit unsigned integer."""
        return self._get_scalar(PayloadType.U32)

    def get_payload_int32(self) -> int:
        """Get the payload as a single 32-bit signed integer."""
        return self._get_scalar(PayloadType.S32)

    def get_payload_uint64(self) -> int:
        """Get the payload as a single 64-bit unsigned integer."""
        return self._get_scalar(PayloadType.U64)

    def get_payload_int64(self) -> int:
        """Get the payload as a single 64-bit signed integer."""
        return self._get_scalar(PayloadType.S64)

    def get_payload_single(self) -> float:
        """Get the payload as a single-precision floating point value."""
        return self._get_scalar(PayloadType.FLOAT)

    def get_timestamped_payload_byte(self) -> Timestamped[int]:
        return Timestamped(self.get_payload_byte(), self.get_timestamp())

    def get_timestamped_payload_sbyte(self) -> Timestamped[int]:
        return Timestamped(self.get_payload_sbyte(), self.get_timestamp())

    def get_timestamped_payload_uint16(self) -> Timestamped[int]:
        return Timestamped(self.get_payload_uint16(), self.get_timestamp())

    def get_timestamped_payload_int16(self) -> Timestamped[int]:
        return Timestamped(self.get_payload_int16(), self.get_timestamp())

    def get_timestamped_payload_uint32(self) -> Timestamped[int]:
        return Timestamped(self.get_payload_uint32(), self.get_timestamp())

    def get_timestamped_payload_int32(self) -> Timestamped[int]:
        return Timestamped(self.get_payload_int32(), self.get_timestamp())

    def get_timestamped_payload_uint64(self) -> Timestamped[int]:
        return Timestamped(self.get_payload_uint64(), self.get_timestamp())

    def get_timestamped_payload_int64(self) -> Timestamped[int]:
        return Timestamped(self.get_payload_int64(), self.get_timestamp())

    def get_timestamped_payload_single(self) -> Timestamped[float]:
        return Timestamped(self.get_payload_single(), self.get_timestamp())

    # ===== Construction =====

    @classmethod
    def from_payload(
        cls,
        address: int,
        message_type: MessageType,
        payload_type: PayloadType,
        payload: bytes | bytearray | memoryview = b"",
        *,
        timestamp: float | None = None,
        port: int = ProtocolConstants.DEVICE_PORT,
    ) -> HarpMessage:
        """
        Create a message from raw payload bytes.

        Raises:
            ProtocolError: If any field is out of range.
        """
        return cls(encode(address, message_type, payload_type, payload, timestamp, port=port))

    @classmethod
    def from_values(
        cls,
        address: int,
        message_type: MessageType,
        payload_type: PayloadType,
        values: Iterable[Number],
        *,
        timestamp: float | None = None,
        port: int = ProtocolConstants.DEVICE_PORT,
    ) -> HarpMessage:
        """
        Create a message from typed payload values.

        Raises:
            ProtocolError: If a value does not fit the element type or any
                field is out of range.
        """
        payload = pack_payload(payload_type, values)
        return cls.from_payload(
            address,
            message_type,
            PayloadType(payload_type).base_type,
            payload,
            timestamp=timestamp,
            port=port,
        )

    @classmethod
    def from_byte(cls, address: int, message_type: MessageType, *values, timestamp: float | None = None,
                  port: int = ProtocolConstants.DEVICE_PORT) -> HarpMessage:
        """Create a message with one or more 8-bit unsigned integer values."""
        return cls.from_values(address, message_type, PayloadType.U8, _normalize_values(values),
                               timestamp=timestamp, port=port)

    @classmethod
    def from_sbyte(cls, address: int, message_type: MessageType, *values, timestamp: float | None = None,
                   port: int = ProtocolConstants.DEVICE_PORT) -> HarpMessage:
        """Create a message with one or more 8-bit signed integer values."""
        return cls.from_values(address, message_type, PayloadType.S8, _normalize_values(values),
                               timestamp=timestamp, port=port)

    @classmethod
    def from_uint16(cls, address: int, message_type: MessageType, *values, timestamp: float | None = None,
                    port: int = ProtocolConstants.DEVICE_PORT) -> HarpMessage:
        """Create a message with one or more 16-bit unsigned integer values."""
        return cls.from_values(address, message_type, PayloadType.U16, _normalize_values(values),
                               timestamp=timestamp, port=port)

    @classmethod
    def from_int16(cls, address: int, message_type: MessageType, *values, timestamp: float | None = None,
                   port: int = ProtocolConstants.DEVICE_PORT) -> HarpMessage:
        """Create a message with one or more 16-bit signed integer values."""
        return cls.from_values(address, message_type, PayloadType.S16, _normalize_values(values),
                               timestamp=timestamp, port=port)

    @classmethod
    def from_uint32(cls, address: int, message_type: MessageType, *values, timestamp: float | None = None,
                    port: int = ProtocolConstants.DEVICE_PORT) -> HarpMessage:
        """Create a message with one or more 32-bit unsigned integer values."""
        return cls.from_values(address, message_type, PayloadType.U32, _normalize_values(values),
                               timestamp=timestamp, port=port)

    @classmethod
    def from_int32(cls, address: int, message_type: MessageType, *values, timestamp: float | None = None,
                   port: int = ProtocolConstants.DEVICE_PORT) -> HarpMessage:
        """Create a message with one or more 32-bit signed integer values."""
        return cls.from_values(address, message_type, PayloadType.S32, _normalize_values(values),
                               timestamp=timestamp, port=port)

    @classmethod
    def from_uint64(cls, address: int, message_type: MessageType, *values, timestamp: float | None = None,
                    port: int = ProtocolConstants.DEVICE_PORT) -> HarpMessage:
        """Create a message with one or more 64-bit unsigned integer values."""
        return cls.from_values(address, message_type, PayloadType.U64, _normalize_values(values),
                               timestamp=timestamp, port=port)

    @classmethod
    def from_int64(cls, address: int, message_type: MessageType, *values, timestamp: float | None = None,
                   port: int = ProtocolConstants.DEVICE_PORT) -> HarpMessage:
        """Create a message with one or more 64-bit signed integer values."""
        return cls.from_values(address, message_type, PayloadType.S64, _normalize_values(values),
                               timestamp=timestamp, port=port)

    @classmethod
    def from_single(cls, address: int, message_type: MessageType, *values, timestamp: float | None = None,
                    port: int = ProtocolConstants.DEVICE_PORT) -> HarpMessage:
        """Create a message with one or more single-precision float values."""
        return cls.from_values(address, message_type, PayloadType.FLOAT, _normalize_values(values),
                               timestamp=timestamp, port=port)

    # ===== Dunder Methods =====

    def __bytes__(self) -> bytes:
        return self._bytes

    def __len__(self) -> int:
        return len(self._bytes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HarpMessage):
            return NotImplemented
        return self._bytes == other._bytes

    def __hash__(self) -> int:
        return hash(self._bytes)

    def __repr__(self) -> str:
        if len(self._bytes) < ProtocolConstants.BASE_OFFSET:
            return f"HarpMessage(invalid, {self._bytes.hex(':')})"
        message_type = self.message_type
        type_name = message_type.name if isinstance(message_type, MessageType) else f"0x{message_type:02X}"
        parts = [type_name, f"address={self.address}"]
        if self.error:
            parts.append("error")
        parts.append(f"payload={len(self._bytes) - self.payload_offset - 1} bytes")
        if not self.is_valid:
            parts.append("invalid")
        return f"HarpMessage({', '.join(parts)})"
