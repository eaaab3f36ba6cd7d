"""
Protocol layer for Harp communication.

This module contains the low-level protocol handling:
- Message and payload types, protocol constants
- Checksum calculation and validation
- Message encoding/decoding and typed payload access
- Ring buffer and byte-stream message reassembly
"""

from pyharp.protocol.checksums import (
    append_checksum,
    calculate_checksum,
    update_checksum,
    validate_checksum,
)
from pyharp.protocol.constants import (
    MessageType,
    PayloadType,
    ProtocolConstants,
    is_valid_payload_type,
)
from pyharp.protocol.message import (
    HarpMessage,
    Timestamped,
    decode_timestamp,
    encode,
    encode_timestamp,
    pack_payload,
)
from pyharp.protocol.reassembler import FrameParseResult, MessageReassembler
from pyharp.protocol.ring_buffer import RingBuffer

__all__ = [
    # Constants
    "MessageType",
    "PayloadType",
    "ProtocolConstants",
    "is_valid_payload_type",
    # Checksums
    "calculate_checksum",
    "validate_checksum",
    "append_checksum",
    "update_checksum",
    # Messages
    "HarpMessage",
    "Timestamped",
    "encode",
    "encode_timestamp",
    "decode_timestamp",
    "pack_payload",
    # Reassembly
    "RingBuffer",
    "MessageReassembler",
    "FrameParseResult",
]
