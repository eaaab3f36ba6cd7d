"""
Recording Harp messages to raw binary files.

A recording is the plain concatenation of message frames, exactly as they
appeared on the wire. Recordings can be read back synchronously with
`iter_messages` or replayed asynchronously with `FileTransport`.

Example:
    >>> async with SerialTransport("/dev/ttyUSB0") as transport:
    ...     with MessageWriter("session.bin", message_type=MessageType.EVENT) as writer:
    ...         transport.subscribe(writer)
    ...         await asyncio.sleep(60)
    >>> for message in iter_messages("session.bin"):
    ...     print(message)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO

from pyharp.protocol.constants import MessageType
from pyharp.protocol.reassembler import MessageReassembler

if TYPE_CHECKING:
    from types import TracebackType

    from pyharp.protocol.message import HarpMessage

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class FilterType(Enum):
    """How a message filter uses its matching criteria."""

    INCLUDE = "include"
    """Accept only matching messages."""

    EXCLUDE = "exclude"
    """Accept every message except the matching ones."""


class MessageWriter:
    """
    Writes each accepted message to a raw binary file.

    The writer is an observer, so it can be subscribed directly to a
    transport. The file is created when the first accepted message arrives
    and closed when the source completes or fails.

    Attributes:
        path: Destination file path.
        message_type: Message type to filter on, or None to accept all.
        filter_type: Whether matching messages are included or excluded.
        split_by_address: Write each register address to its own file,
            named "<stem>_<address><suffix>".
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        message_type: MessageType | None = None,
        filter_type: FilterType = FilterType.INCLUDE,
        *,
        overwrite: bool = False,
        split_by_address: bool = False,
    ) -> None:
        self.path = os.fspath(path)
        self.message_type = message_type
        self.filter_type = filter_type
        self.overwrite = overwrite
        self.split_by_address = split_by_address
        self._files: dict[str, BinaryIO] = {}
        self._closed = False
        self.messages_written = 0

    def is_accepted(self, message: HarpMessage) -> bool:
        """Check whether a message passes the message type filter."""
        if self.message_type is None:
            return True
        matches = message.message_type == self.message_type
        return matches == (self.filter_type is FilterType.INCLUDE)

    def path_for(self, message: HarpMessage) -> str:
        """Get the file a message is written to."""
        if not self.split_by_address:
            return self.path
        stem, suffix = os.path.splitext(self.path)
        return f"{stem}_{message.address}{suffix}"

    def write(self, message: HarpMessage) -> None:
        """
        Append a message to the recording if it is accepted.

        Raises:
            ValueError: If the writer is closed.
            FileExistsError: If the destination exists and overwrite is False.
        """
        if self._closed:
            raise ValueError("Cannot write to a closed MessageWriter")
        if not self.is_accepted(message):
            return

        path = self.path_for(message)
        file = self._files.get(path)
        if file is None:
            file = open(path, "wb" if self.overwrite else "xb")
            self._files[path] = file
            logger.info("Recording messages to %s", path)
        file.write(message.message_bytes)
        self.messages_written += 1

    def flush(self) -> None:
        for file in self._files.values():
            file.flush()

    def close(self) -> None:
        """Close every open file. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        files, self._files = self._files, {}
        for file in files.values():
            file.close()

    # Observer protocol

    def on_next(self, message: HarpMessage) -> None:
        self.write(message)

    def on_error(self, error: BaseException) -> None:
        logger.debug("Message source failed, closing recording: %s", error)
        self.close()

    def on_completed(self) -> None:
        self.close()

    def __enter__(self) -> MessageWriter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"MessageWriter({self.path!r}, message_type={self.message_type}, "
            f"filter_type={self.filter_type.name})"
        )


def iter_messages(
    path: str | os.PathLike[str],
    ignore_errors: bool = False,
    chunk_size: int = READ_CHUNK_SIZE,
) -> Iterator[HarpMessage]:
    """
    Read every message from a recording.

    Corrupted regions are skipped by resynchronization; a truncated final
    frame is dropped.

    Args:
        path: Path of the binary recording.
        ignore_errors: Drop error-flagged Event messages.
        chunk_size: Number of bytes read from the file at once.

    Yields:
        Messages in file order.
    """
    reassembler = MessageReassembler(ignore_errors=ignore_errors)
    with open(path, "rb") as file:
        while chunk := file.read(chunk_size):
            yield from reassembler.feed(chunk)

    if reassembler.buffered:
        logger.debug("Ignoring %d trailing bytes in %s", reassembler.buffered, os.fspath(path))
