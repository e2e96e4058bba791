"""
Binary codec for mixer program instruction payloads.

``multi_layer_transfer`` layout (Anchor / Borsh, little-endian)::

    0   8   discriminator   21 b4 73 8f 5f b0 a4 12
    8   8   transfer_lamports  u64
    16  1   layers             u8
    17  8   round_id           u64
    25  1   layers_data tag    0 = None, 1 = Some
    26  4   layers_data length u32   (only when tag == 1)
    30  n   layers_data bytes

Historical transactions may stop after the fixed header, in which case
``layers_data`` decodes as ``None``.
"""

from __future__ import annotations

import struct
from typing import Optional, Union

from .constants import CLOSE_STAGING_DISCRIMINATOR, MULTI_LAYER_TRANSFER_DISCRIMINATOR
from .errors import MalformedInstructionError
from .models import MediatedTransferInstruction

_HEADER = struct.Struct("<8sQBQ")
_LEN = struct.Struct("<I")
_CLOSE = struct.Struct("<8sBQ")

HEADER_SIZE = _HEADER.size  # 25


class _NotRecognized:
    """Sentinel for payloads that belong to some other instruction."""

    _instance: Optional["_NotRecognized"] = None

    def __new__(cls) -> "_NotRecognized":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_RECOGNIZED"


NOT_RECOGNIZED = _NotRecognized()

DecodeResult = Union[MediatedTransferInstruction, _NotRecognized]


def encode_mediated_transfer(
    transfer_lamports: int,
    layers: int,
    round_id: int,
    layers_data: Optional[bytes] = None,
    discriminator: bytes = MULTI_LAYER_TRANSFER_DISCRIMINATOR,
) -> bytes:
    if len(discriminator) != 8:
        raise ValueError("discriminator must be 8 bytes")
    try:
        header = _HEADER.pack(discriminator, transfer_lamports, layers, round_id)
    except struct.error as exc:
        raise ValueError(f"Field out of range: {exc}") from exc
    if layers_data is None:
        return header + b"\x00"
    return header + b"\x01" + _LEN.pack(len(layers_data)) + bytes(layers_data)


def decode_mediated_transfer(data: bytes) -> DecodeResult:
    """Decode a ``multi_layer_transfer`` payload.

    Returns ``NOT_RECOGNIZED`` when the discriminator is not the transfer
    magic, and raises ``MalformedInstructionError`` when a transfer payload
    is truncated.
    """
    data = bytes(data)
    if len(data) < 8:
        raise MalformedInstructionError(f"Payload is {len(data)} bytes, too short for a discriminator")
    if data[:8] != MULTI_LAYER_TRANSFER_DISCRIMINATOR:
        return NOT_RECOGNIZED
    if len(data) < HEADER_SIZE:
        raise MalformedInstructionError(
            f"Instruction payload is {len(data)} bytes, header needs {HEADER_SIZE}"
        )

    discriminator, lamports, layers, round_id = _HEADER.unpack_from(data, 0)
    layers_data = _decode_option_bytes(data, HEADER_SIZE)
    return MediatedTransferInstruction(
        discriminator=discriminator,
        transfer_lamports=lamports,
        layers=layers,
        round_id=round_id,
        layers_data=layers_data,
    )


def _decode_option_bytes(data: bytes, offset: int) -> Optional[bytes]:
    if len(data) <= offset:
        return None
    tag = data[offset]
    if tag == 0:
        return None
    if tag != 1:
        raise MalformedInstructionError(f"Invalid option tag {tag} at offset {offset}")
    offset += 1
    if len(data) < offset + _LEN.size:
        raise MalformedInstructionError("Truncated layers_data length prefix")
    (length,) = _LEN.unpack_from(data, offset)
    offset += _LEN.size
    if len(data) < offset + length:
        raise MalformedInstructionError(
            f"layers_data declares {length} bytes, only {len(data) - offset} present"
        )
    return data[offset:offset + length]


def encode_close_staging(layer: int, round_id: int) -> bytes:
    try:
        return _CLOSE.pack(CLOSE_STAGING_DISCRIMINATOR, layer, round_id)
    except struct.error as exc:
        raise ValueError(f"Field out of range: {exc}") from exc


def decode_hex(hex_data: str) -> DecodeResult:
    """Decode a hex-encoded payload, as found in some indexer exports."""
    try:
        raw = bytes.fromhex(hex_data)
    except ValueError as exc:
        raise MalformedInstructionError(f"Payload is not valid hex: {exc}") from exc
    return decode_mediated_transfer(raw)
