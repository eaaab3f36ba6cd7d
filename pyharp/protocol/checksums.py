"""
8-bit additive checksum calculation and validation.

The Harp protocol uses a simple additive checksum:
- Sum all bytes of the message except the checksum itself
- Keep only the lower 8 bits (modulo 256)
- Store as a single raw byte at the end of the message
"""

from __future__ import annotations


def calculate_checksum(data: bytes | bytearray | memoryview) -> int:
    """
    Calculate 8-bit additive checksum over the specified data.

    Algorithm: Sum all bytes, keep only lower 8 bits.

    Args:
        data: Data to checksum (every message byte before the checksum).

    Returns:
        8-bit checksum value (0-255).

    Example:
        >>> calculate_checksum(bytes([2, 5, 42, 255, 1, 23]))
        72
    """
    # The & operation is applied once at the end rather than per-byte
    return sum(data) & 0xFF


def validate_checksum(frame: bytes | bytearray | memoryview) -> bool:
    """
    Validate that the trailing checksum byte matches the calculated value.

    Args:
        frame: Complete message including the trailing checksum byte.

    Returns:
        True if checksum is valid, False otherwise (including empty input).

    Example:
        >>> validate_checksum(bytes([2, 5, 42, 255, 1, 23, 72]))
        True
    """
    if len(frame) < 1:
        return False
    return calculate_checksum(frame[:-1]) == frame[-1]


def append_checksum(data: bytes | bytearray) -> bytes:
    """
    Calculate checksum and append it as a single raw byte.

    Args:
        data: Data to checksum.

    Returns:
        Original data with the checksum byte appended.
    """
    return bytes(data) + bytes([calculate_checksum(data)])


def update_checksum(frame: bytearray) -> None:
    """
    Recompute the trailing checksum byte of a frame in place.

    Args:
        frame: Complete message buffer whose last byte is the checksum slot.

    Raises:
        ValueError: If the buffer is empty.
    """
    if not frame:
        raise ValueError("Cannot update checksum of an empty frame")
    frame[-1] = calculate_checksum(memoryview(frame)[:-1])
