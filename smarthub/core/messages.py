"""Payload encoding and decoding for protocol messages.

Payload layout::

    varint src | varint dst | varint serial | u8 dev_type | u8 cmd | body...

Body by command:

- WHOISHERE / IAMHERE: length-prefixed name, then device props
- GETSTATUS: empty
- STATUS: device-specific bytes, interpreted by the registry
- SETSTATUS: one status byte
- TICK: varint timestamp
"""

from __future__ import annotations

import logging

from smarthub.core.codec import (
    decode_string,
    decode_varint,
    encode_string,
    encode_varint,
)
from smarthub.core.errors import FrameDecodeError
from smarthub.core.model import (
    Announce,
    Command,
    DeviceType,
    Empty,
    Message,
    RawStatus,
    SetStatus,
    Tick,
)

LOGGER = logging.getLogger(__name__)


def decode_message(payload: bytes) -> Message | None:
    """Decode one frame payload.

    Returns:
        The decoded ``Message``, or ``None`` if the command or device type is unknown.

    Raises:
        FrameDecodeError: If the payload is truncated or malformed.
    """
    src, offset = decode_varint(payload)
    dst, offset = decode_varint(payload, offset)
    serial, offset = decode_varint(payload, offset)
    if offset + 2 > len(payload):
        raise FrameDecodeError("Payload ends before dev_type/cmd")
    raw_type = payload[offset]
    raw_cmd = payload[offset + 1]
    offset += 2

    try:
        cmd = Command(raw_cmd)
    except ValueError:
        LOGGER.debug("Ignoring message with unknown cmd 0x%02X from 0x%04X", raw_cmd, src)
        return None

    try:
        dev_type = DeviceType(raw_type)
    except ValueError:
        LOGGER.debug("Ignoring message with unknown dev_type 0x%02X from 0x%04X", raw_type, src)
        return None

    rest = payload[offset:]
    if cmd in (Command.WHOISHERE, Command.IAMHERE):
        name, end = decode_string(rest)
        body = Announce(name=name, raw_props=rest[end:])
    elif cmd == Command.GETSTATUS:
        body = Empty()
    elif cmd == Command.STATUS:
        body = RawStatus(data=rest)
    elif cmd == Command.SETSTATUS:
        if not rest:
            raise FrameDecodeError("SETSTATUS without a status byte")
        body = SetStatus(on=rest[0] != 0)
    else:
        timestamp, _ = decode_varint(rest)
        body = Tick(timestamp=timestamp)

    return Message(
        src=src,
        dst=dst,
        serial=serial,
        dev_type=dev_type,
        cmd=cmd,
        body=body,
    )


def encode_message(message: Message) -> bytes:
    """Encode a message into a frame payload."""
    out = bytearray()
    out += encode_varint(message.src)
    out += encode_varint(message.dst)
    out += encode_varint(message.serial)
    out.append(message.dev_type & 0xFF)
    out.append(int(message.cmd))
    out += _encode_body(message)
    return bytes(out)


def _encode_body(message: Message) -> bytes:
    body = message.body
    match body:
        case Announce(name=name, raw_props=props):
            return encode_string(name) + props
        case SetStatus(on=on):
            return bytes([1 if on else 0])
        case RawStatus(data=data):
            return data
        case Tick(timestamp=timestamp):
            return encode_varint(timestamp)
        case _:
            return b""


def _type_name(dev_type: int) -> str:
    try:
        return DeviceType(dev_type).name
    except ValueError:
        return f"0x{dev_type:02X}"


def describe(message: Message) -> str:
    """One-line human-readable rendering of a message."""
    head = (
        f"{message.cmd.name} src=0x{message.src:04X} dst=0x{message.dst:04X} "
        f"serial={message.serial} type={_type_name(message.dev_type)}"
    )
    body = message.body
    match body:
        case Announce(name=name, raw_props=props):
            tail = f" name={name!r}" + (f" props={props.hex()}" if props else "")
        case RawStatus(data=data):
            tail = f" status={data.hex() or '(empty)'}"
        case SetStatus(on=on):
            tail = f" on={on}"
        case Tick(timestamp=timestamp):
            tail = f" timestamp={timestamp}"
        case _:
            tail = ""
    return head + tail
