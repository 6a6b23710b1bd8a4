"""Hub session: the protocol state machine driving one poll cycle at a time.

A cycle drains the outgoing queue into one transport exchange, decodes every
frame of the response, updates the registry, evicts devices that stayed
silent past the response window, and runs automation over whatever changed.
Commands produced during a cycle are sent on the next one.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum

from smarthub.core.automation import AutomationEngine
from smarthub.core.codec import decode_blob, encode_blob, encode_frame, split_frames
from smarthub.core.errors import FrameDecodeError
from smarthub.core.messages import decode_message, describe, encode_message
from smarthub.core.model import (
    ANNOUNCE_COMMANDS,
    BROADCAST_ADDRESS,
    RESPONSE_TIMEOUT,
    Announce,
    Command,
    CommandBody,
    DeviceType,
    Empty,
    Message,
    RawStatus,
    SetStatus,
    Tick,
)
from smarthub.core.registry import DeviceRegistry
from smarthub.transports.base import Data, Failure, NoMoreWork, Transport

LOGGER = logging.getLogger(__name__)

DEFAULT_HUB_NAME = "SmartHub"


class HubState(Enum):
    AWAITING_FIRST_TICK = "awaiting_first_tick"
    DISCOVERING = "discovering"
    STEADY = "steady"


class SessionStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class CycleOutcome:
    sent: int
    received: int = 0
    dropped: int = 0
    finished: bool = False
    failure: str | None = None


@dataclass(frozen=True)
class SessionResult:
    status: SessionStatus
    cycles: int
    reason: str | None = None


class HubSession:
    """All mutable hub state: registry, queue, pending table, clock, serial."""

    def __init__(
        self,
        address: int,
        transport: Transport | None = None,
        *,
        name: str = DEFAULT_HUB_NAME,
    ) -> None:
        if not 0 <= address < BROADCAST_ADDRESS:
            raise ValueError(f"Hub address must be in 0x0000-0x3FFE, got 0x{address:X}")
        self.address = address
        self.name = name
        self.transport = transport
        self.registry = DeviceRegistry()
        self.automation = AutomationEngine(self.registry)
        self.pending: dict[int, int] = {}
        self.outgoing: deque[Message] = deque()
        self.serial = 1
        self.current_timestamp = 0
        self.first_announce_timestamp: int | None = None
        self.started = False

    @property
    def state(self) -> HubState:
        if self.first_announce_timestamp is None:
            return HubState.AWAITING_FIRST_TICK
        if self.current_timestamp - self.first_announce_timestamp <= RESPONSE_TIMEOUT:
            return HubState.DISCOVERING
        return HubState.STEADY

    # outgoing

    def enqueue(self, dst: int, cmd: Command, body: CommandBody | None = None) -> Message:
        message = Message(
            src=self.address,
            dst=dst,
            serial=self.serial,
            dev_type=DeviceType.SMART_HUB,
            cmd=cmd,
            body=body if body is not None else Empty(),
        )
        self.outgoing.append(message)
        self.serial += 1
        return message

    def start(self) -> None:
        """Queue the initial broadcast WHOISHERE. Safe to call more than once."""
        if self.started:
            return
        self.started = True
        self.enqueue(BROADCAST_ADDRESS, Command.WHOISHERE, Announce(name=self.name))

    def drain(self) -> bytes:
        """Encode and empty the outgoing queue, recording pending requests."""
        frames: list[bytes] = []
        while self.outgoing:
            message = self.outgoing.popleft()
            if message.cmd not in ANNOUNCE_COMMANDS:
                self.pending[message.dst] = self.current_timestamp
            LOGGER.debug("-> %s", describe(message))
            frames.append(encode_frame(encode_message(message)))
        return encode_blob(frames)

    # cycle

    def run(self, max_cycles: int | None = None) -> SessionResult:
        """Exchange blobs until the network has no more work or the transport fails."""
        self.start()
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            outcome = self.cycle()
            cycles += 1
            if outcome.failure is not None:
                LOGGER.error("Transport failure after %d cycles: %s", cycles, outcome.failure)
                return SessionResult(status=SessionStatus.FAILED, cycles=cycles, reason=outcome.failure)
            if outcome.finished:
                LOGGER.info("Network reported no further work after %d cycles", cycles)
                return SessionResult(status=SessionStatus.COMPLETED, cycles=cycles)
        return SessionResult(status=SessionStatus.EXHAUSTED, cycles=cycles)

    def cycle(self) -> CycleOutcome:
        if self.transport is None:
            raise RuntimeError("HubSession.cycle() needs a transport")
        self.start()
        sent = len(self.outgoing)
        result = self.transport.exchange(self.drain())

        if isinstance(result, NoMoreWork):
            return CycleOutcome(sent=sent, finished=True)
        if isinstance(result, Failure):
            return CycleOutcome(sent=sent, failure=result.reason)
        if isinstance(result, Data):
            received, dropped = self.process_blob(result.blob)
            return CycleOutcome(sent=sent, received=received, dropped=dropped)
        return CycleOutcome(sent=sent, failure=f"Unexpected transport outcome {result!r}")

    def process_blob(self, blob: bytes | str) -> tuple[int, int]:
        """Handle one response blob.

        Returns:
            ``(messages_handled, frames_dropped)``.
        """
        try:
            raw = decode_blob(blob)
        except FrameDecodeError as exc:
            LOGGER.warning("Ignoring undecodable response: %s", exc)
            return 0, 0

        batch = split_frames(raw)
        dropped = batch.dropped
        handled = 0
        for payload in batch.payloads:
            try:
                message = decode_message(payload)
                if message is None or not self._accepts(message):
                    continue
                self.handle(message)
                handled += 1
            except FrameDecodeError as exc:
                LOGGER.warning("Dropping malformed frame %s: %s", payload.hex(), exc)
                dropped += 1

        self.sweep_timeouts()
        self.run_automation()
        LOGGER.debug(
            "Cycle done: %d handled, %d dropped, %d devices, %d pending, t=%d",
            handled,
            dropped,
            len(self.registry),
            len(self.pending),
            self.current_timestamp,
        )
        return handled, dropped

    def _accepts(self, message: Message) -> bool:
        if message.dst not in (self.address, BROADCAST_ADDRESS):
            return False
        return message.src != self.address

    # handlers

    def handle(self, message: Message) -> None:
        LOGGER.debug("<- %s", describe(message))
        body = message.body
        if message.cmd == Command.TICK and isinstance(body, Tick):
            self._on_tick(body.timestamp)
        elif message.cmd == Command.WHOISHERE:
            self._on_whoishere(message)
        elif message.cmd == Command.IAMHERE:
            self._on_iamhere(message)
        elif message.cmd == Command.STATUS and isinstance(body, RawStatus):
            self._on_status(message.src, body.data)
        else:
            LOGGER.debug("No handler for %s from 0x%04X", message.cmd.name, message.src)

    def _on_tick(self, timestamp: int) -> None:
        self.current_timestamp = timestamp
        if self.first_announce_timestamp is None:
            self.first_announce_timestamp = timestamp

    def _on_whoishere(self, message: Message) -> None:
        device = self.registry.upsert_by_announce(message)
        self.enqueue(BROADCAST_ADDRESS, Command.IAMHERE, Announce(name=self.name))
        if device is not None:
            self.enqueue(device.address, Command.GETSTATUS)

    def _on_iamhere(self, message: Message) -> None:
        if self.first_announce_timestamp is not None:
            elapsed = self.current_timestamp - self.first_announce_timestamp
            if elapsed > RESPONSE_TIMEOUT:
                LOGGER.warning(
                    "Ignoring late IAMHERE from 0x%04X (%d after discovery)",
                    message.src,
                    elapsed,
                )
                return
        device = self.registry.upsert_by_announce(message)
        if device is not None:
            self.enqueue(device.address, Command.GETSTATUS)

    def _on_status(self, address: int, raw: bytes) -> None:
        requested_at = self.pending.pop(address, None)
        if requested_at is not None and self.current_timestamp - requested_at > RESPONSE_TIMEOUT:
            self.evict(address, reason="late STATUS")
            return
        self.registry.apply_status(address, raw)

    # lifecycle

    def evict(self, address: int, *, reason: str) -> None:
        self.pending.pop(address, None)
        device = self.registry.remove_by_address(address)
        if device is not None:
            LOGGER.warning("Evicting %r at 0x%04X: %s", device.name, address, reason)

    def sweep_timeouts(self) -> None:
        expired = [
            address
            for address, requested_at in self.pending.items()
            if self.current_timestamp - requested_at > RESPONSE_TIMEOUT
        ]
        for address in expired:
            self.evict(address, reason="no response")

    def run_automation(self) -> None:
        commands = self.automation.run(self.registry.updated_devices())
        self.registry.clear_updated()
        for command in commands:
            LOGGER.info("Setting %r to %s", command.name, "on" if command.on else "off")
            self.enqueue(command.address, Command.SETSTATUS, SetStatus(on=command.on))
