"""Registry of known peer devices.

Devices are keyed by network address. Names are unique too: registering a
device under a name that is already taken evicts the previous holder, so a
device that re-announces from a new address keeps a single identity.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from smarthub.core.codec import decode_string, decode_varint
from smarthub.core.errors import FrameDecodeError
from smarthub.core.model import (
    Announce,
    Comparator,
    Device,
    DeviceType,
    EnvSensor,
    Lamp,
    Message,
    Sensor,
    Socket,
    Switch,
    Trigger,
)

LOGGER = logging.getLogger(__name__)

_OP_ENABLED = 0x01
_OP_GREATER = 0x02
_OP_SENSOR_SHIFT = 2
_OP_SENSOR_MASK = 0x03


def parse_env_sensor_props(props: bytes) -> tuple[frozenset[Sensor], tuple[Trigger, ...]]:
    """Parse EnvSensor props: sensor bitmask, then a varint-counted trigger list."""
    if not props:
        raise FrameDecodeError("EnvSensor props are empty")
    mask = props[0]
    present = frozenset(sensor for sensor in Sensor if mask & (1 << sensor))

    count, offset = decode_varint(props, 1)
    triggers: list[Trigger] = []
    for _ in range(count):
        if offset >= len(props):
            raise FrameDecodeError("EnvSensor trigger list is truncated")
        op = props[offset]
        threshold, offset = decode_varint(props, offset + 1)
        target_name, offset = decode_string(props, offset)
        triggers.append(
            Trigger(
                enabled=bool(op & _OP_ENABLED),
                comparator=Comparator.GREATER if op & _OP_GREATER else Comparator.LESS,
                sensor=Sensor((op >> _OP_SENSOR_SHIFT) & _OP_SENSOR_MASK),
                threshold=threshold,
                target_name=target_name,
            )
        )
    return present, tuple(triggers)


def parse_switch_props(props: bytes) -> tuple[str, ...]:
    """Parse Switch props: one count byte, then length-prefixed bound names."""
    if not props:
        raise FrameDecodeError("Switch props are empty")
    count = props[0]
    offset = 1
    names: list[str] = []
    for _ in range(count):
        name, offset = decode_string(props, offset)
        names.append(name)
    return tuple(names)


def build_device(message: Message) -> Device | None:
    """Construct a Device from an announce message, or ``None`` for types not tracked."""
    body = message.body
    if not isinstance(body, Announce):
        return None

    if message.dev_type == DeviceType.LAMP:
        return Lamp(address=message.src, name=body.name)
    if message.dev_type == DeviceType.SOCKET:
        return Socket(address=message.src, name=body.name)
    if message.dev_type == DeviceType.SWITCH:
        return Switch(
            address=message.src,
            name=body.name,
            bound_names=parse_switch_props(body.raw_props),
        )
    if message.dev_type == DeviceType.ENV_SENSOR:
        present, triggers = parse_env_sensor_props(body.raw_props)
        return EnvSensor(
            address=message.src,
            name=body.name,
            present=present,
            triggers=triggers,
        )
    return None


class DeviceRegistry:
    def __init__(self) -> None:
        self._devices: dict[int, Device] = {}

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[Device]:
        return iter(list(self._devices.values()))

    def __contains__(self, address: object) -> bool:
        return address in self._devices

    def get(self, address: int) -> Device | None:
        return self._devices.get(address)

    def lookup_by_name(self, name: str) -> Device | None:
        for device in self._devices.values():
            if device.name == name:
                return device
        return None

    def upsert_by_announce(self, message: Message) -> Device | None:
        """Register the device described by a WHOISHERE/IAMHERE message.

        Returns:
            The registered device, or ``None`` if the device type is not tracked.

        Raises:
            FrameDecodeError: If the announce props are malformed.
        """
        device = build_device(message)
        if device is None:
            LOGGER.debug(
                "Not registering device type 0x%02X from 0x%04X",
                message.dev_type,
                message.src,
            )
            return None
        self.insert(device)
        return device

    def insert(self, device: Device) -> None:
        previous = self.remove_by_name(device.name)
        if previous is not None and previous.address != device.address:
            LOGGER.info(
                "Device %r moved from 0x%04X to 0x%04X",
                device.name,
                previous.address,
                device.address,
            )
        self._devices[device.address] = device
        LOGGER.info(
            "Registered %s %r at 0x%04X",
            type(device).__name__,
            device.name,
            device.address,
        )

    def remove_by_address(self, address: int) -> Device | None:
        return self._devices.pop(address, None)

    def remove_by_name(self, name: str) -> Device | None:
        device = self.lookup_by_name(name)
        if device is None:
            return None
        return self._devices.pop(device.address)

    def apply_status(self, address: int, raw: bytes) -> Device | None:
        """Apply a STATUS body to the device at ``address``.

        Lamp, Socket and Switch carry one status byte. EnvSensor carries a
        value count followed by one varint per present metric, in sensor
        index order.

        Returns:
            The device that changed, or ``None`` if the address is unknown or
            the status was empty.
        """
        device = self._devices.get(address)
        if device is None:
            LOGGER.debug("Ignoring STATUS for unknown address 0x%04X", address)
            return None

        if isinstance(device, (Lamp, Socket, Switch)):
            if not raw:
                raise FrameDecodeError(f"Empty STATUS from {device.name!r}")
            device.on = raw[0] != 0
        else:
            if not raw:
                raise FrameDecodeError(f"Empty STATUS from {device.name!r}")
            size = raw[0]
            if size == 0:
                return None
            offset = 1
            values: list[int] = []
            for _ in range(size):
                value, offset = decode_varint(raw, offset)
                values.append(value)
            for sensor, value in zip(sorted(device.present), values):
                device.set_metric(sensor, value)

        device.updated = True
        return device

    def updated_devices(self) -> list[Device]:
        return [device for device in self._devices.values() if device.updated]

    def clear_updated(self) -> None:
        for device in self._devices.values():
            device.updated = False
