from __future__ import annotations

from smarthub.core.automation import AutomationEngine, DriveCommand
from smarthub.core.model import Comparator, EnvSensor, Lamp, Sensor, Socket, Switch, Trigger
from smarthub.core.registry import DeviceRegistry


def _registry(*devices) -> DeviceRegistry:
    registry = DeviceRegistry()
    for device in devices:
        registry.insert(device)
    return registry


def _sensor(triggers: tuple[Trigger, ...], **metrics: int) -> EnvSensor:
    present = frozenset(Sensor[name.upper()] for name in metrics)
    sensor = EnvSensor(address=0x08, name="SENSOR1", present=present, triggers=triggers)
    for name, value in metrics.items():
        setattr(sensor, name, value)
    sensor.updated = True
    return sensor


def test_switch_drives_bound_actuators() -> None:
    switch = Switch(address=0x07, name="SWITCH1", bound_names=("LAMP1", "SOCKET1", "MISSING"), on=True)
    registry = _registry(Lamp(0x05, "LAMP1"), Socket(0x06, "SOCKET1"), switch)

    commands = AutomationEngine(registry).run([switch])
    assert commands == [
        DriveCommand(address=0x05, name="LAMP1", on=True),
        DriveCommand(address=0x06, name="SOCKET1", on=True),
    ]


def test_drive_skips_actuator_already_in_state() -> None:
    switch = Switch(address=0x07, name="SWITCH1", bound_names=("LAMP1",), on=True)
    registry = _registry(Lamp(0x05, "LAMP1", on=True), switch)

    assert AutomationEngine(registry).run([switch]) == []


def test_drive_ignores_non_actuators() -> None:
    other = Switch(address=0x09, name="OTHER", on=False)
    switch = Switch(address=0x07, name="SWITCH1", bound_names=("OTHER",), on=True)
    registry = _registry(other, switch)

    assert AutomationEngine(registry).run([switch]) == []


def test_greater_trigger_fires() -> None:
    trigger = Trigger(True, Comparator.GREATER, Sensor.TEMPERATURE, 25, "LAMP1")
    sensor = _sensor((trigger,), temperature=30)
    registry = _registry(Lamp(0x05, "LAMP1"), sensor)

    assert AutomationEngine(registry).run([sensor]) == [DriveCommand(0x05, "LAMP1", True)]


def test_less_trigger_fires_and_equal_does_not() -> None:
    trigger = Trigger(False, Comparator.LESS, Sensor.ILLUMINATION, 100, "SOCKET1")
    registry = _registry(Socket(0x06, "SOCKET1", on=True))

    dark = _sensor((trigger,), illumination=99)
    registry.insert(dark)
    assert AutomationEngine(registry).run([dark]) == [DriveCommand(0x06, "SOCKET1", False)]

    exact = _sensor((trigger,), illumination=100)
    registry.insert(exact)
    assert AutomationEngine(registry).run([exact]) == []


def test_absent_metric_compares_as_minus_one() -> None:
    fires = Trigger(True, Comparator.LESS, Sensor.HUMIDITY, 0, "LAMP1")
    silent = Trigger(True, Comparator.GREATER, Sensor.AIR_POLLUTION, -1, "LAMP1")
    sensor = _sensor((fires, silent), temperature=10)
    registry = _registry(Lamp(0x05, "LAMP1"), sensor)

    assert sensor.humidity == -1
    assert AutomationEngine(registry).run([sensor]) == [DriveCommand(0x05, "LAMP1", True)]


def test_lamp_already_on_gets_no_second_setstatus() -> None:
    trigger = Trigger(True, Comparator.GREATER, Sensor.TEMPERATURE, 25, "LAMP1")
    lamp = Lamp(0x05, "LAMP1")
    sensor = _sensor((trigger,), temperature=30)
    registry = _registry(lamp, sensor)
    engine = AutomationEngine(registry)

    assert len(engine.run([sensor])) == 1
    lamp.on = True
    assert engine.run([sensor]) == []


def test_rule_for_target_already_in_state_keeps_earlier_command() -> None:
    triggers = (
        Trigger(True, Comparator.GREATER, Sensor.TEMPERATURE, 20, "LAMP1"),
        Trigger(False, Comparator.GREATER, Sensor.HUMIDITY, 50, "LAMP1"),
    )
    sensor = _sensor(triggers, temperature=30, humidity=60)
    registry = _registry(Lamp(0x05, "LAMP1"), sensor)

    assert AutomationEngine(registry).run([sensor]) == [DriveCommand(0x05, "LAMP1", True)]


def test_every_firing_rule_queues_a_command() -> None:
    triggers = (
        Trigger(True, Comparator.GREATER, Sensor.TEMPERATURE, 25, "LAMP1"),
        Trigger(True, Comparator.GREATER, Sensor.TEMPERATURE, 20, "LAMP1"),
    )
    sensor = _sensor(triggers, temperature=30)
    registry = _registry(Lamp(0x05, "LAMP1"), sensor)

    assert AutomationEngine(registry).run([sensor]) == [
        DriveCommand(0x05, "LAMP1", True),
        DriveCommand(0x05, "LAMP1", True),
    ]
