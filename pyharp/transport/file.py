"""
Playback of recorded Harp message files.

A recording is the raw concatenation of message frames as written by
`MessageWriter`. Playback reads the file through the same reassembler as
a live link, so corrupted regions are skipped by resynchronization.

When a playback rate is given, delivery is paced by the message
timestamps: a message with timestamp `t` is delivered `(t - t0) / rate`
seconds after the pacing clock started at `t0`. The clock starts at the
first timestamped message and restarts whenever the device clock is set
(a timestamped WRITE to TIMESTAMP_SECONDS), since timestamps jump there.
Without a rate, messages are delivered as fast as they can be read.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import BinaryIO, ClassVar

from pyharp.exceptions import TransportError
from pyharp.models.registers import DeviceRegister
from pyharp.protocol.constants import MessageType, PayloadType
from pyharp.protocol.message import HarpMessage
from pyharp.transport.abc import HarpTransport

logger = logging.getLogger(__name__)

FILE_READ_BUFFER_SIZE = 4096

_CLOCK_RESET_PAYLOAD_TYPE = PayloadType.TIMESTAMPED_U32


class FileTransport(HarpTransport):
    """
    Read-only transport replaying a recorded message file.

    End of file completes the subscribers cleanly. Writes are rejected.

    Example:
        >>> async with FileTransport("session.bin", playback_rate=2.0) as playback:
        ...     async with playback.messages() as stream:
        ...         async for message in stream:
        ...             print(message)
    """

    completes_on_eof: ClassVar[bool] = True

    def __init__(
        self,
        path: str | os.PathLike[str],
        playback_rate: float | None = None,
        *,
        ignore_errors: bool = False,
        read_buffer_size: int = FILE_READ_BUFFER_SIZE,
    ) -> None:
        """
        Initialize the playback transport.

        Args:
            path: Path of the binary recording.
            playback_rate: Speed multiplier for paced playback, or None to
                deliver messages as fast as possible.
            ignore_errors: Drop error-flagged Event messages.
            read_buffer_size: Number of bytes read from the file at once.

        Raises:
            ValueError: If the playback rate is not positive.
        """
        if playback_rate is not None and playback_rate <= 0:
            raise ValueError(f"playback_rate must be positive, got {playback_rate}")
        super().__init__(ignore_errors=ignore_errors, read_buffer_size=read_buffer_size)
        self._path = os.fspath(path)
        self._playback_rate = playback_rate
        self._file: BinaryIO | None = None
        self._clock_start: float | None = None
        self._timestamp_offset = 0.0

    @property
    def port_name(self) -> str:
        return self._path

    @property
    def playback_rate(self) -> float | None:
        return self._playback_rate

    async def _open_stream(self) -> None:
        try:
            self._file = open(self._path, "rb")
        except OSError as e:
            raise TransportError(f"Failed to open recording {self._path}: {e}") from e

    async def _read_chunk(self, size: int) -> bytes:
        return await asyncio.to_thread(self._file.read, size)

    async def _write_bytes(self, data: bytes) -> None:
        raise TransportError(f"Recording {self._path} is read-only")

    async def _close_stream(self) -> None:
        file, self._file = self._file, None
        if file is not None:
            file.close()

    async def _dispatch(self, message: HarpMessage) -> None:
        if self._playback_rate is not None:
            timestamp = message.try_get_timestamp()
            if timestamp is not None:
                await self._wait_until(timestamp / self._playback_rate, message)
        self._broadcaster.publish(message)

    async def _wait_until(self, scaled_timestamp: float, message: HarpMessage) -> None:
        now = asyncio.get_running_loop().time()
        if self._clock_start is None or _is_clock_reset(message):
            logger.debug("Playback clock reset at %.6f", scaled_timestamp)
            self._clock_start = now
            self._timestamp_offset = scaled_timestamp

        delay = (scaled_timestamp - self._timestamp_offset) - (now - self._clock_start)
        if delay > 0:
            await asyncio.sleep(delay)

    def __repr__(self) -> str:
        return f"FileTransport({self._path!r}, playback_rate={self._playback_rate})"


def _is_clock_reset(message: HarpMessage) -> bool:
    return (
        message.message_type == MessageType.WRITE
        and message.address == DeviceRegister.TIMESTAMP_SECONDS
        and message.payload_type == _CLOCK_RESET_PAYLOAD_TYPE
    )
