"""
Exception hierarchy for pyharp.

All exceptions inherit from HarpError, providing a clean hierarchy
for error handling:

1. Malformed frames on the wire are never raised; the reassembler resyncs
2. Device-reported errors carry the offending reply message
3. Timeouts are distinct from device errors
4. Payload accessor misuse is a local programming error (PayloadTypeError)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pyharp.protocol.message import HarpMessage


class HarpError(Exception):
    """
    Base exception for all pyharp errors.

    All library-specific exceptions inherit from this class, allowing
    callers to catch all pyharp errors with a single except clause.
    """

    pass


class ProtocolError(HarpError):
    """
    Protocol-level error.

    Raised when a message cannot be built, such as:
    - Address or port outside 0-255
    - Payload value out of range for its element type
    - Payload too large to fit the 8-bit length field
    """

    pass


class PayloadTypeError(HarpError, TypeError):
    """
    Payload accessor type mismatch.

    Raised when a typed payload accessor does not match the message shape,
    e.g. reading a 2-element array as a scalar, reading a U16 payload with
    a 32-bit accessor, or asking for the timestamp of a message without one.
    """

    pass


class HarpDeviceError(HarpError):
    """
    Error reported by the device.

    Raised when a reply carries the error flag. The `reply` attribute holds
    the original message so callers can inspect the failing register.
    """

    def __init__(self, reply: HarpMessage, message: str | None = None) -> None:
        self.reply = reply
        super().__init__(message or _format_device_error(reply))

    @property
    def address(self) -> int:
        """Address of the register that reported the error."""
        return self.reply.address


class TimeoutError(HarpError):  # noqa: A001 - intentionally shadows builtin
    """
    Command timeout.

    Raised when a reply is not received within the expected time. The
    command has already been written and is not re-sent.
    """

    def __init__(
        self,
        message: str = "Timeout while awaiting the device response",
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds

    def __str__(self) -> str:
        base = super().__str__()
        if self.timeout_seconds is not None:
            return f"{base} (after {self.timeout_seconds:.3f}s)"
        return base


class TransportError(HarpError):
    """
    Transport-level error.

    Raised for low-level transport issues:
    - Serial port errors
    - Unexpected disconnect or end of stream
    - Writing to a closed transport
    """

    pass


class VersionFormatError(HarpError, ValueError):
    """
    Malformed version string.

    Raised by HarpVersion.parse when the input is not of the form
    "<major>.<minor>" where each component is a number or the "x" wildcard.
    """

    def __init__(self, message: str, *, text: str | None = None) -> None:
        super().__init__(message)
        self.text = text

    def __str__(self) -> str:
        base = super().__str__()
        if self.text is not None:
            return f"{base} (got {self.text!r})"
        return base


def _format_device_error(reply: HarpMessage) -> str:
    from pyharp.protocol.constants import MessageType

    payload_type = reply.payload_type.base_type
    type_name = payload_type.name if payload_type.name else f"0x{int(payload_type):02X}"
    if reply.message_type == MessageType.WRITE:
        try:
            values = reply.get_payload_array()
        except PayloadTypeError:
            values = []
        payload = ",".join(str(value) for value in values)
        return (
            "The device reported an erroneous write command. "
            f"Payload: {payload}, Address: {reply.address}, Type: {type_name}."
        )

    if not reply.payload:
        return (
            "The device reported an erroneous read command. "
            f"Type not correct for address {reply.address}."
        )
    return (
        "The device reported an erroneous read command. "
        f"Address: {reply.address}, Type: {type_name}."
    )
