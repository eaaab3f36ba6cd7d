"""
Data models for Harp devices.

This module contains the value types shared by every Harp device:

- HarpVersion: two-component versions with wildcard matching
- Common register addresses, payload layouts and flag types
"""

from pyharp.models.registers import (
    DEVICE_NAME_LENGTH,
    REGISTERS,
    ClockConfigurationFlags,
    DeviceRegister,
    OperationControl,
    OperationMode,
    RegisterInfo,
    ResetFlags,
    decode_device_name,
    encode_device_name,
)
from pyharp.models.version import HarpVersion

__all__ = [
    # Versions
    "HarpVersion",
    # Registers
    "DeviceRegister",
    "RegisterInfo",
    "REGISTERS",
    "DEVICE_NAME_LENGTH",
    # Register values
    "ResetFlags",
    "ClockConfigurationFlags",
    "OperationMode",
    "OperationControl",
    "encode_device_name",
    "decode_device_name",
]
