"""
Async serial transport using pyserial-asyncio.

This module provides the primary transport implementation for communicating
with Harp devices over their USB serial interface.

Serial Configuration:
- Baud rate: 1 000 000 (default)
- Data bits: 8
- Parity: None
- Stop bits: 1
- Flow control: RTS/CTS hardware handshake
- DTR: asserted (the device only talks to a host holding DTR)

Example:
    >>> transport = SerialTransport("/dev/ttyUSB0")
    >>> async with transport:
    ...     device = AsyncDevice(transport)
    ...     who_am_i = await device.read_who_am_i()
"""

from __future__ import annotations

import asyncio
import logging

import serial
import serial_asyncio
from pydantic import BaseModel, ConfigDict, Field

from pyharp.exceptions import TransportError
from pyharp.protocol.constants import ProtocolConstants
from pyharp.transport.stream import StreamTransport

logger = logging.getLogger(__name__)


class SerialSettings(BaseModel):
    """
    Serial port options for a Harp device.

    Example:
        >>> SerialSettings(baudrate=115200).handshake
        True
    """

    model_config = ConfigDict(frozen=True)

    baudrate: int = Field(
        default=ProtocolConstants.DEFAULT_BAUD_RATE, gt=0, description="Baud rate in bits/s"
    )
    handshake: bool = Field(default=True, description="Use RTS/CTS hardware flow control")
    dtr: bool = Field(default=True, description="Assert the DTR line after opening")
    read_buffer_size: int = Field(
        default=ProtocolConstants.DEFAULT_READ_BUFFER_SIZE,
        gt=0,
        description="Maximum number of bytes taken per read",
    )


class SerialTransport(StreamTransport):
    """
    Async serial transport using pyserial-asyncio.

    Provides non-blocking serial communication using Python's asyncio
    framework. This is the primary transport for real hardware communication.

    Device error events are delivered by default so that command replies
    flagged with an error reach the caller; pass `ignore_errors=True` to drop
    error-flagged events.

    Attributes:
        port_name: Serial port path (e.g., "/dev/ttyUSB0", "COM3").
        settings: Serial port options.

    Example:
        >>> transport = SerialTransport("COM3", settings=SerialSettings(baudrate=115200))
        >>> await transport.open()
        >>> try:
        ...     await transport.write(message)
        ... finally:
        ...     await transport.close()
    """

    def __init__(
        self,
        port: str,
        settings: SerialSettings | None = None,
        *,
        ignore_errors: bool = False,
        **overrides,
    ) -> None:
        """
        Initialize the serial transport.

        Args:
            port: Serial port path (e.g., "/dev/ttyUSB0", "COM3").
            settings: Serial port options (default: SerialSettings()).
            ignore_errors: Drop error-flagged Event messages.
            **overrides: Individual SerialSettings fields overriding `settings`.

        Raises:
            pydantic.ValidationError: If an option is invalid.
        """
        settings = settings or SerialSettings()
        if overrides:
            settings = SerialSettings(**{**settings.model_dump(), **overrides})
        super().__init__(
            name=port,
            ignore_errors=ignore_errors,
            read_buffer_size=settings.read_buffer_size,
        )
        self._port = port
        self._settings = settings
        self._serial_instance: serial.Serial | None = None

    @property
    def settings(self) -> SerialSettings:
        return self._settings

    @property
    def baudrate(self) -> int:
        """Get the configured baud rate."""
        return self._settings.baudrate

    async def _connect(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """
        Open the serial port connection.

        Raises:
            TransportError: If the port cannot be opened.
        """
        try:
            reader, writer = await serial_asyncio.open_serial_connection(
                url=self._port,
                baudrate=self._settings.baudrate,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                bytesize=serial.EIGHTBITS,
                xonxoff=False,
                rtscts=self._settings.handshake,
                dsrdtr=False,
            )
        except serial.SerialException as e:
            raise TransportError(f"Failed to open serial port {self._port}: {e}") from e
        except OSError as e:
            raise TransportError(f"OS error opening {self._port}: {e}") from e

        # Underlying port, needed for the modem control lines
        transport = writer.transport
        if hasattr(transport, "serial"):
            self._serial_instance = transport.serial
            self._serial_instance.dtr = self._settings.dtr
        logger.debug(
            "Serial port %s configured: %d baud, handshake=%s, dtr=%s",
            self._port,
            self._settings.baudrate,
            self._settings.handshake,
            self._settings.dtr,
        )
        return reader, writer

    async def _read_chunk(self, size: int) -> bytes:
        try:
            return await super()._read_chunk(size)
        except serial.SerialException as e:
            raise TransportError(f"Read from {self._port} failed: {e}") from e

    async def _close_stream(self) -> None:
        self._serial_instance = None
        await super()._close_stream()

    def discard_buffers(self) -> None:
        """
        Drop unread input, pending output and any partially received frame.

        Raises:
            TransportError: If the port rejects the request.
        """
        if self._serial_instance is None:
            return
        try:
            self._serial_instance.reset_input_buffer()
            self._serial_instance.reset_output_buffer()
        except serial.SerialException as e:
            raise TransportError(f"Could not discard buffers on {self._port}: {e}") from e
        self._reassembler.reset()
        logger.debug("Discarded buffers on %s", self._port)

    def __repr__(self) -> str:
        status = "open" if self.is_open else "closed"
        return f"SerialTransport({self._port!r}, baudrate={self._settings.baudrate}, {status})"
