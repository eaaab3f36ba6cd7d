"""
Transport over an asyncio StreamReader/StreamWriter pair.

Any bidirectional byte stream exposed through asyncio streams can carry
Harp messages: a TCP socket to a network bridge, a pipe, or the serial
connection created by pyserial-asyncio.

Example:
    >>> transport = await connect_tcp("192.168.1.10", 9000)
    >>> async with transport:
    ...     await transport.write(HarpCommand.read(DeviceRegister.WHO_AM_I, PayloadType.U16))
"""

from __future__ import annotations

import asyncio
import logging

from pyharp.exceptions import TransportError
from pyharp.protocol.constants import ProtocolConstants
from pyharp.transport.abc import HarpTransport

logger = logging.getLogger(__name__)


class StreamTransport(HarpTransport):
    """
    Harp transport over already connected asyncio streams.

    The streams may be supplied at construction time, or created on open
    by subclasses overriding `_connect`.

    Attributes:
        port_name: Identifier used in logs and errors.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader | None = None,
        writer: asyncio.StreamWriter | None = None,
        *,
        name: str = "stream",
        ignore_errors: bool = False,
        read_buffer_size: int = ProtocolConstants.DEFAULT_READ_BUFFER_SIZE,
    ) -> None:
        super().__init__(ignore_errors=ignore_errors, read_buffer_size=read_buffer_size)
        self._name = name
        self._reader = reader
        self._writer = writer

    @property
    def port_name(self) -> str:
        return self._name

    async def _connect(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Create the streams when none were supplied."""
        raise TransportError(f"No stream supplied for {self._name}")

    async def _open_stream(self) -> None:
        if self._reader is None or self._writer is None:
            self._reader, self._writer = await self._connect()

    async def _read_chunk(self, size: int) -> bytes:
        return await self._reader.read(size)

    async def _write_bytes(self, data: bytes) -> None:
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (OSError, RuntimeError) as e:
            raise TransportError(f"Write to {self._name} failed: {e}") from e

    async def _close_stream(self) -> None:
        writer, self._writer = self._writer, None
        self._reader = None
        if writer is None:
            return
        writer.close()
        await writer.wait_closed()


class TcpTransport(StreamTransport):
    """Harp transport over a TCP connection, opened on `open()`."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        ignore_errors: bool = False,
        read_buffer_size: int = ProtocolConstants.DEFAULT_READ_BUFFER_SIZE,
    ) -> None:
        super().__init__(
            name=f"tcp://{host}:{port}",
            ignore_errors=ignore_errors,
            read_buffer_size=read_buffer_size,
        )
        self._host = host
        self._port = port

    async def _connect(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        logger.debug("Connecting to %s", self._name)
        try:
            return await asyncio.open_connection(self._host, self._port)
        except OSError as e:
            raise TransportError(f"Failed to connect to {self._name}: {e}") from e


async def connect_tcp(
    host: str,
    port: int,
    *,
    ignore_errors: bool = False,
    read_buffer_size: int = ProtocolConstants.DEFAULT_READ_BUFFER_SIZE,
) -> TcpTransport:
    """
    Connect to a Harp device over TCP and start reading.

    Args:
        host: Host name or IP address.
        port: TCP port.
        ignore_errors: Drop error-flagged Event messages.
        read_buffer_size: Maximum number of bytes taken per read.

    Returns:
        An open transport.

    Raises:
        TransportError: If the connection cannot be established.
    """
    transport = TcpTransport(
        host, port, ignore_errors=ignore_errors, read_buffer_size=read_buffer_size
    )
    await transport.open()
    return transport
