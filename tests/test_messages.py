from __future__ import annotations

import pytest

from smarthub.core.codec import encode_string, encode_varint
from smarthub.core.errors import FrameDecodeError
from smarthub.core.messages import decode_message, describe, encode_message
from smarthub.core.model import (
    BROADCAST_ADDRESS,
    Announce,
    Command,
    DeviceType,
    Empty,
    Message,
    RawStatus,
    SetStatus,
    Tick,
)


def _header(src: int, dst: int, serial: int, dev_type: int, cmd: int) -> bytes:
    return encode_varint(src) + encode_varint(dst) + encode_varint(serial) + bytes([dev_type, cmd])


def test_decode_known_whoishere() -> None:
    message = decode_message(bytes.fromhex("01ff7f010101054855423031"))
    assert message is not None
    assert message.src == 0x0001
    assert message.dst == BROADCAST_ADDRESS
    assert message.is_broadcast
    assert message.serial == 1
    assert message.dev_type == DeviceType.SMART_HUB
    assert message.cmd is Command.WHOISHERE
    assert message.body == Announce(name="HUB01", raw_props=b"")


def test_decode_announce_keeps_props() -> None:
    payload = _header(0x05, BROADCAST_ADDRESS, 7, DeviceType.SWITCH, Command.IAMHERE)
    payload += encode_string("SWITCH1") + b"\x02" + encode_string("LAMP1") + encode_string("SOCKET1")

    message = decode_message(payload)
    assert message is not None
    assert message.body == Announce(
        name="SWITCH1",
        raw_props=b"\x02" + encode_string("LAMP1") + encode_string("SOCKET1"),
    )


def test_decode_tick() -> None:
    payload = _header(0x06, BROADCAST_ADDRESS, 3, DeviceType.CLOCK, Command.TICK) + encode_varint(1688984021000)
    message = decode_message(payload)
    assert message is not None
    assert message.body == Tick(timestamp=1688984021000)


def test_decode_status_is_raw() -> None:
    payload = _header(0x05, 0x0EF0, 9, DeviceType.LAMP, Command.STATUS) + b"\x01"
    message = decode_message(payload)
    assert message is not None
    assert message.body == RawStatus(data=b"\x01")


def test_decode_getstatus_and_setstatus() -> None:
    get = decode_message(_header(1, 2, 3, DeviceType.SMART_HUB, Command.GETSTATUS))
    assert get is not None and get.body == Empty()

    set_on = decode_message(_header(1, 2, 3, DeviceType.SMART_HUB, Command.SETSTATUS) + b"\x01")
    assert set_on is not None and set_on.body == SetStatus(on=True)


def test_unknown_command_is_ignored() -> None:
    assert decode_message(_header(1, 2, 3, DeviceType.LAMP, 0x42)) is None


def test_unknown_device_type_is_ignored() -> None:
    assert decode_message(_header(1, 2, 3, 0x09, Command.TICK) + b"\x10") is None


def test_string_longer_than_payload_raises() -> None:
    payload = _header(1, 2, 3, DeviceType.LAMP, Command.IAMHERE) + b"\x10ABC"
    with pytest.raises(FrameDecodeError):
        decode_message(payload)


def test_truncated_header_raises() -> None:
    with pytest.raises(FrameDecodeError):
        decode_message(encode_varint(1) + encode_varint(2) + encode_varint(3) + b"\x04")


def test_encode_whoishere_matches_known_payload() -> None:
    message = Message(
        src=0x0001,
        dst=BROADCAST_ADDRESS,
        serial=1,
        dev_type=DeviceType.SMART_HUB,
        cmd=Command.WHOISHERE,
        body=Announce(name="HUB01"),
    )
    assert encode_message(message) == bytes.fromhex("01ff7f010101054855423031")


def test_encode_setstatus_writes_status_byte() -> None:
    on = Message(src=0x0EF0, dst=0x05, serial=4, dev_type=DeviceType.SMART_HUB, cmd=Command.SETSTATUS, body=SetStatus(on=True))
    off = Message(src=0x0EF0, dst=0x05, serial=5, dev_type=DeviceType.SMART_HUB, cmd=Command.SETSTATUS, body=SetStatus(on=False))
    assert encode_message(on)[-1] == 1
    assert encode_message(off)[-1] == 0


def test_encode_getstatus_has_no_body() -> None:
    message = Message(src=0x0EF0, dst=0x05, serial=2, dev_type=DeviceType.SMART_HUB, cmd=Command.GETSTATUS)
    assert encode_message(message) == _header(0x0EF0, 0x05, 2, DeviceType.SMART_HUB, Command.GETSTATUS)


def test_describe_is_readable() -> None:
    message = Message(src=0x05, dst=BROADCAST_ADDRESS, serial=1, dev_type=DeviceType.LAMP, cmd=Command.IAMHERE, body=Announce(name="LAMP1"))
    text = describe(message)
    assert text.startswith("IAMHERE src=0x0005 dst=0x3FFF")
    assert "type=LAMP" in text
    assert "name='LAMP1'" in text
