"""
Common registers shared by every Harp device.

Addresses 0-31 are reserved for the core registers that identify the
device, control its operation mode and synchronize its clock. Each register
has a fixed payload type and element count.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Final

from pydantic import BaseModel, ConfigDict, Field

from pyharp.protocol.constants import PayloadType


class DeviceRegister(IntEnum):
    """Addresses of the common device registers."""

    WHO_AM_I = 0
    HARDWARE_VERSION_HIGH = 1
    HARDWARE_VERSION_LOW = 2
    ASSEMBLY_VERSION = 3
    CORE_VERSION_HIGH = 4
    CORE_VERSION_LOW = 5
    FIRMWARE_VERSION_HIGH = 6
    FIRMWARE_VERSION_LOW = 7
    TIMESTAMP_SECONDS = 8
    TIMESTAMP_MICROSECONDS = 9
    OPERATION_CONTROL = 10
    RESET_DEVICE = 11
    DEVICE_NAME = 12
    SERIAL_NUMBER = 13
    CLOCK_CONFIGURATION = 14


class RegisterInfo(BaseModel):
    """
    Payload layout of a register.

    Example:
        >>> REGISTERS[DeviceRegister.DEVICE_NAME].length
        25
    """

    model_config = ConfigDict(frozen=True)

    address: int = Field(ge=0, le=255, description="Register address")
    payload_type: PayloadType = Field(description="Element type of the register payload")
    length: int = Field(default=1, ge=1, description="Number of payload elements")

    @property
    def size(self) -> int:
        """Payload size in bytes."""
        return self.payload_type.element_size * self.length


REGISTERS: Final[dict[DeviceRegister, RegisterInfo]] = {
    register: RegisterInfo(address=register, payload_type=payload_type, length=length)
    for register, payload_type, length in (
        (DeviceRegister.WHO_AM_I, PayloadType.U16, 1),
        (DeviceRegister.HARDWARE_VERSION_HIGH, PayloadType.U8, 1),
        (DeviceRegister.HARDWARE_VERSION_LOW, PayloadType.U8, 1),
        (DeviceRegister.ASSEMBLY_VERSION, PayloadType.U8, 1),
        (DeviceRegister.CORE_VERSION_HIGH, PayloadType.U8, 1),
        (DeviceRegister.CORE_VERSION_LOW, PayloadType.U8, 1),
        (DeviceRegister.FIRMWARE_VERSION_HIGH, PayloadType.U8, 1),
        (DeviceRegister.FIRMWARE_VERSION_LOW, PayloadType.U8, 1),
        (DeviceRegister.TIMESTAMP_SECONDS, PayloadType.U32, 1),
        (DeviceRegister.TIMESTAMP_MICROSECONDS, PayloadType.U16, 1),
        (DeviceRegister.OPERATION_CONTROL, PayloadType.U8, 1),
        (DeviceRegister.RESET_DEVICE, PayloadType.U8, 1),
        (DeviceRegister.DEVICE_NAME, PayloadType.U8, 25),
        (DeviceRegister.SERIAL_NUMBER, PayloadType.U16, 1),
        (DeviceRegister.CLOCK_CONFIGURATION, PayloadType.U8, 1),
    )
}
"""Payload layout of each common register."""

DEVICE_NAME_LENGTH: Final[int] = 25


class ResetFlags(IntFlag):
    """Behavior of the non-volatile registers when resetting the device."""

    NONE = 0x00
    RESTORE_DEFAULT = 0x01
    RESTORE_EEPROM = 0x02
    SAVE = 0x04
    RESTORE_NAME = 0x08
    BOOT_FROM_DEFAULT = 0x40
    BOOT_FROM_EEPROM = 0x80


class ClockConfigurationFlags(IntFlag):
    """Configuration flags for the device synchronization clock."""

    NONE = 0x00
    CLOCK_REPEATER = 0x01
    CLOCK_GENERATOR = 0x02
    REPEATER_CAPABILITY = 0x08
    GENERATOR_CAPABILITY = 0x10
    CLOCK_UNLOCK = 0x40
    CLOCK_LOCK = 0x80


class OperationMode(IntEnum):
    """Operation mode of the device."""

    STANDBY = 0
    ACTIVE = 1
    SPEED = 3


class OperationControl(BaseModel):
    """
    Decoded value of the OPERATION_CONTROL register.

    Bit layout (LSB first):
        0-1: operation mode
        3:   dump all registers on next reply
        4:   mute replies
        5:   visual indicators on
        6:   operation LED on
        7:   heartbeat enabled

    Example:
        >>> control = OperationControl.from_byte(0x61)
        >>> control.operation_mode
        <OperationMode.ACTIVE: 1>
        >>> control.to_byte()
        97
    """

    model_config = ConfigDict(frozen=True)

    operation_mode: OperationMode = OperationMode.STANDBY
    dump_registers: bool = False
    mute_replies: bool = False
    visual_indicators: bool = False
    operation_led: bool = False
    heartbeat: bool = False

    @classmethod
    def from_byte(cls, value: int) -> OperationControl:
        """
        Decode a register value.

        Raises:
            ValueError: If the mode bits do not name an operation mode.
        """
        return cls(
            operation_mode=OperationMode(value & 0x03),
            dump_registers=bool(value & 0x08),
            mute_replies=bool(value & 0x10),
            visual_indicators=bool(value & 0x20),
            operation_led=bool(value & 0x40),
            heartbeat=bool(value & 0x80),
        )

    def to_byte(self) -> int:
        """Encode as a register value."""
        value = int(self.operation_mode) & 0x03
        if self.dump_registers:
            value |= 0x08
        if self.mute_replies:
            value |= 0x10
        if self.visual_indicators:
            value |= 0x20
        if self.operation_led:
            value |= 0x40
        if self.heartbeat:
            value |= 0x80
        return value


def encode_device_name(name: str) -> bytes:
    """
    Encode a device name as the DEVICE_NAME register payload.

    The name is ASCII encoded, truncated to 24 characters and padded with
    NUL bytes to the 25-byte register length. Non-ASCII characters are
    replaced with '?'.

    Example:
        >>> encode_device_name("Behavior")[:9]
        b'Behavior\\x00'
    """
    encoded = name.encode("ascii", errors="replace")[:DEVICE_NAME_LENGTH - 1]
    return encoded.ljust(DEVICE_NAME_LENGTH, b"\x00")


def decode_device_name(payload: bytes | bytearray | memoryview) -> str:
    """
    Decode the DEVICE_NAME register payload.

    Characters up to the first NUL byte are returned; a payload without a
    terminator is decoded in full.
    """
    data = bytes(payload)
    end = data.find(b"\x00")
    if end >= 0:
        data = data[:end]
    return data.decode("ascii", errors="replace")
