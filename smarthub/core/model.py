"""Core data models used across the codec, registry, session and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Union

BROADCAST_ADDRESS = 0x3FFF
ADDRESS_MASK = 0x3FFF
RESPONSE_TIMEOUT = 300
METRIC_ABSENT = -1


class DeviceType(IntEnum):
    SMART_HUB = 0x01
    ENV_SENSOR = 0x02
    SWITCH = 0x03
    LAMP = 0x04
    SOCKET = 0x05
    CLOCK = 0x06


class Command(IntEnum):
    WHOISHERE = 0x01
    IAMHERE = 0x02
    GETSTATUS = 0x03
    STATUS = 0x04
    SETSTATUS = 0x05
    TICK = 0x06


ANNOUNCE_COMMANDS = frozenset({Command.WHOISHERE, Command.IAMHERE})


@dataclass(frozen=True)
class Announce:
    name: str
    raw_props: bytes = b""


@dataclass(frozen=True)
class Empty:
    pass


@dataclass(frozen=True)
class RawStatus:
    data: bytes = b""


@dataclass(frozen=True)
class SetStatus:
    on: bool


@dataclass(frozen=True)
class Tick:
    timestamp: int


CommandBody = Union[Announce, Empty, RawStatus, SetStatus, Tick]


@dataclass(frozen=True)
class Message:
    src: int
    dst: int
    serial: int
    dev_type: int
    cmd: Command
    body: CommandBody = field(default_factory=Empty)

    @property
    def is_broadcast(self) -> bool:
        return self.dst == BROADCAST_ADDRESS


class Comparator(Enum):
    GREATER = "greater"
    LESS = "less"


class Sensor(IntEnum):
    """Sensor index as used in the EnvSensor bitmask and trigger op byte."""

    TEMPERATURE = 0
    HUMIDITY = 1
    ILLUMINATION = 2
    AIR_POLLUTION = 3


@dataclass(frozen=True)
class Trigger:
    enabled: bool
    comparator: Comparator
    sensor: Sensor
    threshold: int
    target_name: str

    def holds(self, metric: int) -> bool:
        if self.comparator is Comparator.GREATER:
            return metric > self.threshold
        return metric < self.threshold


@dataclass
class Lamp:
    address: int
    name: str
    on: bool = False
    updated: bool = False


@dataclass
class Socket:
    address: int
    name: str
    on: bool = False
    updated: bool = False


@dataclass
class Switch:
    address: int
    name: str
    bound_names: tuple[str, ...] = ()
    on: bool = False
    updated: bool = False


@dataclass
class EnvSensor:
    address: int
    name: str
    present: frozenset[Sensor] = frozenset()
    triggers: tuple[Trigger, ...] = ()
    temperature: int = METRIC_ABSENT
    humidity: int = METRIC_ABSENT
    illumination: int = METRIC_ABSENT
    air_pollution: int = METRIC_ABSENT
    updated: bool = False

    def metric(self, sensor: Sensor) -> int:
        return getattr(self, sensor.name.lower())

    def set_metric(self, sensor: Sensor, value: int) -> None:
        setattr(self, sensor.name.lower(), value)


Device = Union[Lamp, Socket, Switch, EnvSensor]
Actuator = Union[Lamp, Socket]
