"""
Asynchronous Harp device client.

This module provides the main client interface for issuing commands to a
Harp device and awaiting the matching replies.

A command is correlated with its reply by (address, message type): the
first message read after the command with the same address and message
type completes the command. The subscription is registered before the
command is written, so a fast reply is never missed.

Example:
    >>> from pyharp import AsyncDevice
    >>> from pyharp.transport import SerialTransport
    >>>
    >>> async def main():
    ...     async with AsyncDevice(SerialTransport("/dev/ttyUSB0"), timeout=1.0) as device:
    ...         print(await device.read_who_am_i())
    ...         print(await device.read_firmware_version())
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from pyharp.exceptions import HarpDeviceError, TimeoutError, TransportError
from pyharp.models.registers import (
    ClockConfigurationFlags,
    DeviceRegister,
    OperationControl,
    ResetFlags,
    decode_device_name,
    encode_device_name,
)
from pyharp.models.version import HarpVersion
from pyharp.protocol.constants import MessageType, PayloadType, ProtocolConstants
from pyharp.protocol.message import HarpMessage, Number

if TYPE_CHECKING:
    from types import TracebackType

    from pyharp.transport.abc import HarpTransport
    from pyharp.transport.observable import Subscription

# Module logger
logger = logging.getLogger(__name__)

# Marks a command timeout left to the device default
_DEVICE_TIMEOUT = object()


class HarpCommand:
    """
    Factory for host-issued command messages.

    Example:
        >>> HarpCommand.read(DeviceRegister.WHO_AM_I, PayloadType.U16)
        HarpMessage(READ, address=0, payload=0 bytes)
        >>> HarpCommand.write(42, PayloadType.U8, [23]).message_bytes.hex()
        '02052aff011748'
    """

    @staticmethod
    def read(address: int, payload_type: PayloadType) -> HarpMessage:
        """
        Create a read command for a register.

        Args:
            address: Register address.
            payload_type: Expected element type of the register.
        """
        return HarpMessage.from_payload(address, MessageType.READ, PayloadType(payload_type).base_type)

    @staticmethod
    def write(address: int, payload_type: PayloadType, values: Number | Iterable[Number]) -> HarpMessage:
        """
        Create a write command for a register.

        Args:
            address: Register address.
            payload_type: Element type of the register.
            values: A single value or a sequence of values.

        Raises:
            ProtocolError: If a value does not fit the element type.
        """
        if isinstance(values, (int, float)):
            values = [values]
        return HarpMessage.from_values(address, MessageType.WRITE, payload_type, values)


class _ReplyObserver:
    """Completes a future with the first message matching a command."""

    def __init__(self, command: HarpMessage, future: asyncio.Future[HarpMessage]) -> None:
        self._address = command.address
        self._message_type = command.message_type
        self._future = future

    def on_next(self, message: HarpMessage) -> None:
        if self._future.done():
            return
        if message.is_match(self._address, self._message_type):
            self._future.set_result(message)

    def on_error(self, error: BaseException) -> None:
        if not self._future.done():
            self._future.set_exception(error)

    def on_completed(self) -> None:
        if not self._future.done():
            self._future.set_exception(
                TransportError("Transport closed while awaiting the device response")
            )


class AsyncDevice:
    """
    Client for issuing commands to a Harp device.

    Commands may be issued concurrently; each call receives exactly one
    outcome (its reply, a device error, a timeout, a transport failure, or
    cancellation). Written commands are never re-sent.

    Attributes:
        transport: The underlying transport layer.
        timeout: Default command timeout in seconds (None waits forever).
    """

    def __init__(
        self,
        transport: HarpTransport,
        timeout: float | None = ProtocolConstants.DEFAULT_COMMAND_TIMEOUT,
        *,
        leave_open: bool = False,
    ) -> None:
        """
        Initialize the device client.

        Args:
            transport: Transport layer for communication.
            timeout: Default timeout for commands in seconds.
            leave_open: Keep the transport open when the device is closed.
        """
        self._transport = transport
        self._timeout = timeout
        self._leave_open = leave_open

    @classmethod
    async def connect(
        cls,
        port_name: str,
        timeout: float | None = ProtocolConstants.DEFAULT_COMMAND_TIMEOUT,
        **settings,
    ) -> AsyncDevice:
        """
        Open a serial connection to a device.

        Args:
            port_name: Serial port path (e.g., "/dev/ttyUSB0", "COM3").
            timeout: Default timeout for commands in seconds.
            **settings: SerialSettings fields.

        Raises:
            TransportError: If the port cannot be opened.
        """
        from pyharp.transport.serial_async import SerialTransport

        transport = SerialTransport(port_name, **settings)
        await transport.open()
        return cls(transport, timeout)

    @property
    def transport(self) -> HarpTransport:
        """Get the underlying transport."""
        return self._transport

    @property
    def timeout(self) -> float | None:
        return self._timeout

    async def open(self) -> None:
        """Open the transport if it is not open yet."""
        if not self._transport.is_open:
            await self._transport.open()

    async def close(self) -> None:
        """Close the transport unless the device was created with leave_open."""
        if not self._leave_open:
            await self._transport.close()

    # ===== Commands =====

    async def command(
        self,
        message: HarpMessage,
        timeout: float | None | object = _DEVICE_TIMEOUT,
    ) -> HarpMessage:
        """
        Send a command and await the device reply.

        Args:
            message: The command to send.
            timeout: Seconds to wait for the reply. None waits until the
                reply arrives. Defaults to the device timeout.

        Returns:
            The first message with the command's address and message type.

        Raises:
            HarpDeviceError: If the reply carries the error flag.
            TimeoutError: If no reply arrives within the timeout.
            TransportError: If the transport fails or closes while waiting.
        """
        if timeout is _DEVICE_TIMEOUT:
            timeout = self._timeout
        if not self._transport.is_open:
            raise TransportError(f"Transport {self._transport.port_name} is not open")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[HarpMessage] = loop.create_future()
        subscription: Subscription = self._transport.subscribe(_ReplyObserver(message, future))
        try:
            await self._transport.write(message)
            if timeout is None:
                reply = await future
            else:
                reply = await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.warning("Timeout after %.3fs awaiting reply to %r", timeout, message)
            raise TimeoutError(timeout_seconds=timeout) from None
        finally:
            subscription.dispose()

        if reply.error:
            error = HarpDeviceError(reply)
            logger.error("%s", error)
            raise error
        return reply

    # ===== Core registers =====

    async def read_who_am_i(self) -> int:
        """Read the identity class of the device."""
        return await self.read_uint16(DeviceRegister.WHO_AM_I)

    async def read_hardware_version(self) -> HarpVersion:
        """Read the hardware version of the device."""
        major = await self.read_byte(DeviceRegister.HARDWARE_VERSION_HIGH)
        minor = await self.read_byte(DeviceRegister.HARDWARE_VERSION_LOW)
        return HarpVersion(major, minor)

    async def read_assembly_version(self) -> int:
        """Read the version of the assembled components."""
        return await self.read_byte(DeviceRegister.ASSEMBLY_VERSION)

    async def read_core_version(self) -> HarpVersion:
        """Read the version of the Harp core implemented by the device."""
        major = await self.read_byte(DeviceRegister.CORE_VERSION_HIGH)
        minor = await self.read_byte(DeviceRegister.CORE_VERSION_LOW)
        return HarpVersion(major, minor)

    async def read_firmware_version(self) -> HarpVersion:
        """Read the firmware version of the device."""
        major = await self.read_byte(DeviceRegister.FIRMWARE_VERSION_HIGH)
        minor = await self.read_byte(DeviceRegister.FIRMWARE_VERSION_LOW)
        return HarpVersion(major, minor)

    async def read_timestamp_seconds(self) -> int:
        """Read the integral seconds of the device clock."""
        return await self.read_uint32(DeviceRegister.TIMESTAMP_SECONDS)

    async def write_timestamp_seconds(self, seconds: int) -> None:
        """Set the integral seconds of the device clock."""
        await self.write_uint32(DeviceRegister.TIMESTAMP_SECONDS, seconds)

    async def read_timestamp_microseconds(self) -> int:
        """Read the fractional part of the device clock, in 32 microsecond ticks."""
        return await self.read_uint16(DeviceRegister.TIMESTAMP_MICROSECONDS)

    async def read_operation_control(self) -> OperationControl:
        """Read the operation mode and indicator configuration."""
        return OperationControl.from_byte(await self.read_byte(DeviceRegister.OPERATION_CONTROL))

    async def write_operation_control(self, control: OperationControl) -> None:
        """Set the operation mode and indicator configuration."""
        await self.write_byte(DeviceRegister.OPERATION_CONTROL, control.to_byte())

    async def read_reset_device(self) -> ResetFlags:
        """Read the boot source and non-volatile register state."""
        return ResetFlags(await self.read_byte(DeviceRegister.RESET_DEVICE))

    async def write_reset_device(self, flags: ResetFlags) -> None:
        """Reset the device, optionally saving or restoring registers."""
        await self.write_byte(DeviceRegister.RESET_DEVICE, int(flags))

    async def read_device_name(self) -> str:
        """Read the human-readable name of the device."""
        reply = await self.command(HarpCommand.read(DeviceRegister.DEVICE_NAME, PayloadType.U8))
        return decode_device_name(reply.payload)

    async def write_device_name(self, name: str) -> None:
        """
        Set the human-readable name of the device.

        Names longer than 24 characters are truncated.
        """
        await self.write_byte(DeviceRegister.DEVICE_NAME, encode_device_name(name))

    async def read_serial_number(self) -> int:
        """Read the unique serial number of the device."""
        return await self.read_uint16(DeviceRegister.SERIAL_NUMBER)

    async def read_clock_configuration(self) -> ClockConfigurationFlags:
        """Read the synchronization clock configuration."""
        return ClockConfigurationFlags(await self.read_byte(DeviceRegister.CLOCK_CONFIGURATION))

    async def write_clock_configuration(self, flags: ClockConfigurationFlags) -> None:
        """Set the synchronization clock configuration."""
        await self.write_byte(DeviceRegister.CLOCK_CONFIGURATION, int(flags))

    # ===== Generic register access =====

    async def _read_reply(self, address: int, payload_type: PayloadType) -> HarpMessage:
        return await self.command(HarpCommand.read(address, payload_type))

    async def _write(self, address: int, payload_type: PayloadType, values) -> None:
        await self.command(HarpCommand.write(address, payload_type, values))

    async def read_byte(self, address: int) -> int:
        """Read an 8-bit unsigned integer register."""
        return (await self._read_reply(address, PayloadType.U8)).get_payload_byte()

    async def read_byte_array(self, address: int) -> list[int]:
        """Read an 8-bit unsigned integer array register."""
        return (await self._read_reply(address, PayloadType.U8)).get_payload_array(PayloadType.U8)

    async def read_sbyte(self, address: int) -> int:
        """Read an 8-bit signed integer register."""
        return (await self._read_reply(address, PayloadType.S8)).get_payload_sbyte()

    async def read_sbyte_array(self, address: int) -> list[int]:
        """Read an 8-bit signed integer array register."""
        return (await self._read_reply(address, PayloadType.S8)).get_payload_array(PayloadType.S8)

    async def read_uint16(self, address: int) -> int:
        """Read a 16-bit unsigned integer register."""
        return (await self._read_reply(address, PayloadType.U16)).get_payload_uint16()

    async def read_uint16_array(self, address: int) -> list[int]:
        """Read a 16-bit unsigned integer array register."""
        return (await self._read_reply(address, PayloadType.U16)).get_payload_array(PayloadType.U16)

    async def read_int16(self, address: int) -> int:
        """Read a 16-bit signed integer register."""
        return (await self._read_reply(address, PayloadType.S16)).get_payload_int16()

    async def read_int16_array(self, address: int) -> list[int]:
        """Read a 16-bit signed integer array register."""
        return (await self._read_reply(address, PayloadType.S16)).get_payload_array(PayloadType.S16)

    async def read_uint32(self, address: int) -> int:
        """Read a 32-bit unsigned integer register."""
        return (await self._read_reply(address, PayloadType.U32)).get_payload_uint32()

    async def read_uint32_array(self, address: int) -> list[int]:
        """Read a 32-bit unsigned integer array register."""
        return (await self._read_reply(address, PayloadType.U32)).get_payload_array(PayloadType.U32)

    async def read_int32(self, address: int) -> int:
        """Read a 32-bit signed integer register."""
        return (await self._read_reply(address, PayloadType.S32)).get_payload_int32()

    async def read_int32_array(self, address: int) -> list[int]:
        """Read a 32-bit signed integer array register."""
        return (await self._read_reply(address, PayloadType.S32)).get_payload_array(PayloadType.S32)

    async def read_uint64(self, address: int) -> int:
        """Read a 64-bit unsigned integer register."""
        return (await self._read_reply(address, PayloadType.U64)).get_payload_uint64()

    async def read_uint64_array(self, address: int) -> list[int]:
        """Read a 64-bit unsigned integer array register."""
        return (await self._read_reply(address, PayloadType.U64)).get_payload_array(PayloadType.U64)

    async def read_int64(self, address: int) -> int:
        """Read a 64-bit signed integer register."""
        return (await self._read_reply(address, PayloadType.S64)).get_payload_int64()

    async def read_int64_array(self, address: int) -> list[int]:
        """Read a 64-bit signed integer array register."""
        return (await self._read_reply(address, PayloadType.S64)).get_payload_array(PayloadType.S64)

    async def read_single(self, address: int) -> float:
        """Read a single-precision floating point register."""
        return (await self._read_reply(address, PayloadType.FLOAT)).get_payload_single()

    async def read_single_array(self, address: int) -> list[float]:
        """Read a single-precision floating point array register."""
        return (await self._read_reply(address, PayloadType.FLOAT)).get_payload_array(PayloadType.FLOAT)

    async def write_byte(self, address: int, values: int | Sequence[int]) -> None:
        """Write one or more 8-bit unsigned integers to a register."""
        await self._write(address, PayloadType.U8, values)

    async def write_sbyte(self, address: int, values: int | Sequence[int]) -> None:
        """Write one or more 8-bit signed integers to a register."""
        await self._write(address, PayloadType.S8, values)

    async def write_uint16(self, address: int, values: int | Sequence[int]) -> None:
        """Write one or more 16-bit unsigned integers to a register."""
        await self._write(address, PayloadType.U16, values)

    async def write_int16(self, address: int, values: int | Sequence[int]) -> None:
        """Write one or more 16-bit signed integers to a register."""
        await self._write(address, PayloadType.S16, values)

    async def write_uint32(self, address: int, values: int | Sequence[int]) -> None:
        """Write one or more 32-bit unsigned integers to a register."""
        await self._write(address, PayloadType.U32, values)

    async def write_int32(self, address: int, values: int | Sequence[int]) -> None:
        """Write one or more 32-bit signed integers to a register."""
        await self._write(address, PayloadType.S32, values)

    async def write_uint64(self, address: int, values: int | Sequence[int]) -> None:
        """Write one or more 64-bit unsigned integers to a register."""
        await self._write(address, PayloadType.U64, values)

    async def write_int64(self, address: int, values: int | Sequence[int]) -> None:
        """Write one or more 64-bit signed integers to a register."""
        await self._write(address, PayloadType.S64, values)

    async def write_single(self, address: int, values: float | Sequence[float]) -> None:
        """Write one or more single-precision floats to a register."""
        await self._write(address, PayloadType.FLOAT, values)

    # ===== Context Manager =====

    async def __aenter__(self) -> AsyncDevice:
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
        return f"AsyncDevice({self._transport!r}, timeout={self._timeout})"
