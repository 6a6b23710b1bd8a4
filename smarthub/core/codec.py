"""Wire codec: ULEB128 varints, CRC-8 and length-prefixed frames.

Blob layout (before base64)::

    +--------+-------------------+-------+--------+-------------------+-------+
    | length | payload           | crc8  | length | payload           | crc8  | ...
    | 1 byte | ``length`` bytes  | 1 byte| 1 byte | ``length`` bytes  | 1 byte|
    +--------+-------------------+-------+--------+-------------------+-------+

- CRC-8: polynomial 0x1D, initial value 0, MSB-first, over the payload only
- Blob: frames concatenated and encoded as unpadded URL-safe base64
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from smarthub.core.errors import FrameDecodeError, FrameEncodeError

CRC8_POLY = 0x1D
MAX_FRAME_PAYLOAD = 0xFF
LOGGER = logging.getLogger(__name__)


def encode_varint(value: int) -> bytes:
    """Encode a non-negative integer as ULEB128."""
    if value < 0:
        raise ValueError(f"varint value must be non-negative, got {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a ULEB128 integer starting at ``offset``.

    Returns:
        ``(value, next_offset)``.

    Raises:
        FrameDecodeError: If the data ends before the final group.
    """
    result = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise FrameDecodeError("Truncated varint")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, offset
        shift += 7


def encode_string(value: str) -> bytes:
    """Encode a string as one length byte followed by its UTF-8 bytes."""
    raw = value.encode("utf-8")
    if len(raw) > 0xFF:
        raise FrameEncodeError(f"String too long for a length byte: {value!r}")
    return bytes([len(raw)]) + raw


def decode_string(data: bytes, offset: int = 0) -> tuple[str, int]:
    """Decode a length-prefixed UTF-8 string starting at ``offset``."""
    if offset >= len(data):
        raise FrameDecodeError("Missing string length byte")
    length = data[offset]
    start = offset + 1
    end = start + length
    if end > len(data):
        raise FrameDecodeError(
            f"String declares {length} bytes but only {len(data) - start} remain"
        )
    try:
        return data[start:end].decode("utf-8"), end
    except UnicodeDecodeError as exc:
        raise FrameDecodeError(f"String is not valid UTF-8: {exc}") from exc


def _crc8_table() -> tuple[int, ...]:
    table = []
    for value in range(256):
        crc = value
        for _ in range(8):
            if crc & 0x80:
                crc = ((crc << 1) ^ CRC8_POLY) & 0xFF
            else:
                crc = (crc << 1) & 0xFF
        table.append(crc)
    return tuple(table)


_CRC8_TABLE = _crc8_table()


def crc8(data: bytes) -> int:
    """CRC-8 (poly 0x1D, init 0, non-reflected) over ``data``."""
    crc = 0
    for byte in data:
        crc = _CRC8_TABLE[crc ^ byte]
    return crc


def encode_frame(payload: bytes) -> bytes:
    """Wrap a payload into ``length | payload | crc8``."""
    if len(payload) > MAX_FRAME_PAYLOAD:
        raise FrameEncodeError(
            f"Frame payload must be at most {MAX_FRAME_PAYLOAD} bytes, got {len(payload)}"
        )
    return bytes([len(payload)]) + payload + bytes([crc8(payload)])


@dataclass
class FrameBatch:
    """Payloads recovered from one blob plus the number of frames dropped."""

    payloads: list[bytes] = field(default_factory=list)
    dropped: int = 0


def split_frames(data: bytes) -> FrameBatch:
    """Split concatenated frames, skipping any frame whose CRC does not match."""
    batch = FrameBatch()
    offset = 0
    while offset < len(data):
        length = data[offset]
        start = offset + 1
        end = start + length
        if end >= len(data):
            LOGGER.warning(
                "Truncated frame at offset %d (declared %d bytes, %d left)",
                offset,
                length,
                len(data) - start,
            )
            batch.dropped += 1
            break
        payload = data[start:end]
        received = data[end]
        offset = end + 1
        expected = crc8(payload)
        if received != expected:
            LOGGER.warning(
                "Dropping frame with bad CRC: got 0x%02X, expected 0x%02X",
                received,
                expected,
            )
            batch.dropped += 1
            continue
        batch.payloads.append(payload)
    return batch


def encode_blob(frames: Iterable[bytes]) -> bytes:
    """Concatenate encoded frames into an unpadded URL-safe base64 blob."""
    raw = b"".join(frames)
    return base64.urlsafe_b64encode(raw).rstrip(b"=")


def decode_blob(blob: bytes | str) -> bytes:
    """Decode an unpadded URL-safe base64 blob into raw frame bytes."""
    if isinstance(blob, str):
        blob = blob.encode("ascii", errors="replace")
    text = blob.strip()
    text += b"=" * (-len(text) % 4)
    try:
        return base64.b64decode(text, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FrameDecodeError(f"Invalid base64 blob: {exc}") from exc
