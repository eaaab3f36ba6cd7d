"""
Transport layer for Harp communication.

This package provides transport implementations that read Harp messages
from a byte stream and broadcast them to observers.

Available transports:
- SerialTransport: Async serial port using pyserial-asyncio
- StreamTransport / TcpTransport: asyncio streams, e.g. a TCP bridge
- FileTransport: Playback of a recorded message file
- MockTransport: Mock transport for testing without hardware

Example:
    >>> from pyharp.transport import SerialTransport
    >>> async with SerialTransport("/dev/ttyUSB0") as transport:
    ...     async with transport.messages() as stream:
    ...         async for message in stream:
    ...             print(message)

Testing Example:
    >>> from pyharp.transport import MockTransport
    >>> mock = MockTransport()
    >>> mock.add_response(HarpMessage.from_uint16(0, MessageType.READ, 1216))
"""

from pyharp.transport.abc import HarpTransport
from pyharp.transport.file import FileTransport
from pyharp.transport.mock import MockTransport
from pyharp.transport.observable import (
    CallbackObserver,
    MessageBroadcaster,
    MessageStream,
    Observer,
    Subscription,
)
from pyharp.transport.serial_async import SerialSettings, SerialTransport
from pyharp.transport.stream import StreamTransport, TcpTransport, connect_tcp

__all__ = [
    "HarpTransport",
    "SerialTransport",
    "SerialSettings",
    "StreamTransport",
    "TcpTransport",
    "connect_tcp",
    "FileTransport",
    "MockTransport",
    "Observer",
    "CallbackObserver",
    "Subscription",
    "MessageBroadcaster",
    "MessageStream",
]
