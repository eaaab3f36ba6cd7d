"""
pyharp - Python library for communicating with Harp devices.

This library provides async communication with Harp acquisition and
control devices over serial, TCP or recorded files: message encoding and
decoding, stream reassembly, message broadcast, and command/reply
correlation.

Example:
    >>> from pyharp import AsyncDevice
    >>> from pyharp.transport import SerialTransport
    >>>
    >>> async def main():
    ...     async with AsyncDevice(SerialTransport("/dev/ttyUSB0"), timeout=1.0) as device:
    ...         print(await device.read_who_am_i())
    ...         print(await device.read_device_name())
"""

from pyharp.device import AsyncDevice, HarpCommand
from pyharp.exceptions import (
    HarpDeviceError,
    HarpError,
    PayloadTypeError,
    ProtocolError,
    TimeoutError,
    TransportError,
    VersionFormatError,
)
from pyharp.models import DeviceRegister, HarpVersion
from pyharp.protocol import HarpMessage, MessageType, PayloadType, Timestamped
from pyharp.recording import FilterType, MessageWriter, iter_messages
from pyharp.transport import (
    FileTransport,
    HarpTransport,
    MockTransport,
    SerialTransport,
    StreamTransport,
)

__version__ = "0.1.0"
__all__ = [
    # Device
    "AsyncDevice",
    "HarpCommand",
    # Messages
    "HarpMessage",
    "MessageType",
    "PayloadType",
    "Timestamped",
    # Models
    "HarpVersion",
    "DeviceRegister",
    # Recording
    "MessageWriter",
    "FilterType",
    "iter_messages",
    # Exceptions
    "HarpError",
    "ProtocolError",
    "PayloadTypeError",
    "HarpDeviceError",
    "TimeoutError",
    "TransportError",
    "VersionFormatError",
    # Transport
    "HarpTransport",
    "SerialTransport",
    "StreamTransport",
    "FileTransport",
    "MockTransport",
    # Version
    "__version__",
]
