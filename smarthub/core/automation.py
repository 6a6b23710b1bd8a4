"""Automation rules: switch bindings and EnvSensor triggers."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from smarthub.core.model import Device, EnvSensor, Lamp, Socket, Switch
from smarthub.core.registry import DeviceRegistry

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriveCommand:
    address: int
    name: str
    on: bool


class AutomationEngine:
    """Turns fresh device state into SETSTATUS commands for lamps and sockets.

    The engine does not touch actuator state itself; the actuator's own
    STATUS reply is what flips ``on`` in the registry.
    """

    def __init__(self, registry: DeviceRegistry) -> None:
        self._registry = registry

    def run(self, devices: Iterable[Device]) -> list[DriveCommand]:
        commands: list[DriveCommand] = []
        for device in devices:
            if isinstance(device, Switch):
                for name in device.bound_names:
                    self._drive(name, device.on, commands)
            elif isinstance(device, EnvSensor):
                # absent metrics read as -1 and are compared like any other value
                for trigger in device.triggers:
                    if trigger.holds(device.metric(trigger.sensor)):
                        self._drive(trigger.target_name, trigger.enabled, commands)
        return commands

    def _drive(self, name: str, desired_on: bool, commands: list[DriveCommand]) -> None:
        target = self._registry.lookup_by_name(name)
        if target is None:
            LOGGER.debug("Automation target %r is not registered", name)
            return
        if not isinstance(target, (Lamp, Socket)):
            LOGGER.debug("Automation target %r is a %s, not an actuator", name, type(target).__name__)
            return
        if target.on == desired_on:
            return
        commands.append(DriveCommand(address=target.address, name=target.name, on=desired_on))
