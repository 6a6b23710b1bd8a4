"""Public names for embedding the hub.

Scripts that drive a hub against a server, or decode captured blobs, should
import from here. `Client` bundles config, the HTTP transport and a session.
"""

from __future__ import annotations

from smarthub.core.automation import AutomationEngine, DriveCommand
from smarthub.core.codec import (
    FrameBatch,
    crc8,
    decode_blob,
    decode_varint,
    encode_blob,
    encode_frame,
    encode_varint,
    split_frames,
)
from smarthub.core.config_loader import HubConfig, LoadedConfig, load_config
from smarthub.core.errors import (
    ConfigLoadError,
    ConfigValidationError,
    FrameDecodeError,
    FrameEncodeError,
    SmartHubError,
    TransportConnectError,
    TransportError,
    TransportTimeoutError,
)
from smarthub.core.messages import decode_message, describe, encode_message
from smarthub.core.model import (
    BROADCAST_ADDRESS,
    RESPONSE_TIMEOUT,
    Announce,
    Command,
    Comparator,
    Device,
    DeviceType,
    Empty,
    EnvSensor,
    Lamp,
    Message,
    RawStatus,
    Sensor,
    SetStatus,
    Socket,
    Switch,
    Tick,
    Trigger,
)
from smarthub.core.registry import DeviceRegistry
from smarthub.core.session import (
    CycleOutcome,
    HubSession,
    HubState,
    SessionResult,
    SessionStatus,
)
from smarthub.transports.base import Data, Failure, NoMoreWork, Outcome, Transport
from smarthub.transports.http import HTTPTransport

__all__ = [
    "SmartHubError",
    "ConfigLoadError",
    "ConfigValidationError",
    "FrameDecodeError",
    "FrameEncodeError",
    "TransportError",
    "TransportConnectError",
    "TransportTimeoutError",
    "BROADCAST_ADDRESS",
    "RESPONSE_TIMEOUT",
    "Announce",
    "Command",
    "Comparator",
    "Device",
    "DeviceType",
    "Empty",
    "EnvSensor",
    "Lamp",
    "Message",
    "RawStatus",
    "Sensor",
    "SetStatus",
    "Socket",
    "Switch",
    "Tick",
    "Trigger",
    "FrameBatch",
    "crc8",
    "decode_blob",
    "decode_varint",
    "encode_blob",
    "encode_frame",
    "encode_varint",
    "split_frames",
    "decode_message",
    "describe",
    "encode_message",
    "DeviceRegistry",
    "AutomationEngine",
    "DriveCommand",
    "CycleOutcome",
    "HubSession",
    "HubState",
    "SessionResult",
    "SessionStatus",
    "HubConfig",
    "LoadedConfig",
    "load_config",
    "Data",
    "Failure",
    "NoMoreWork",
    "Outcome",
    "Transport",
    "HTTPTransport",
    "Client",
]


class Client:
    """One hub address talking to one server.

    Pass `transport` to replace HTTP, e.g. with a recorded exchange in tests.
    """

    def __init__(
        self,
        address: int,
        *,
        url: str | None = None,
        name: str = "SmartHub",
        timeout_s: float = 10.0,
        transport: Transport | None = None,
    ) -> None:
        if transport is None:
            if url is None:
                raise ValueError("Client needs either a url or a transport")
            transport = HTTPTransport(url, timeout_s=timeout_s)
        self._session = HubSession(address, transport, name=name)

    @classmethod
    def from_config(cls, config: HubConfig, *, transport: Transport | None = None) -> Client:
        if config.address is None:
            raise ConfigValidationError("hub.address is not configured")
        return cls(
            config.address,
            url=config.url,
            name=config.name,
            timeout_s=config.timeout_s,
            transport=transport,
        )

    @property
    def session(self) -> HubSession:
        return self._session

    @property
    def state(self) -> HubState:
        return self._session.state

    def devices(self) -> list[Device]:
        return list(self._session.registry)

    def device(self, name: str) -> Device | None:
        return self._session.registry.lookup_by_name(name)

    def step(self) -> CycleOutcome:
        return self._session.cycle()

    def run(self, *, max_cycles: int | None = None) -> SessionResult:
        return self._session.run(max_cycles=max_cycles)
