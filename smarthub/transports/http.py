"""HTTP transport implementation using requests."""

from __future__ import annotations

import logging

import requests

from smarthub.core.errors import (
    TransportConnectError,
    TransportError,
    TransportTimeoutError,
)
from smarthub.transports.base import Data, Failure, NoMoreWork, Outcome

LOGGER = logging.getLogger(__name__)


class HTTPTransport:
    def __init__(self, url: str, *, timeout_s: float = 10.0) -> None:
        self.url = url
        self.timeout_s = timeout_s

    def exchange(self, blob: bytes) -> Outcome:
        try:
            response = self._post(blob)
        except TransportError as exc:
            return Failure(str(exc))

        if response.status_code == 200:
            return Data(response.content)
        if response.status_code == 204:
            return NoMoreWork()
        return Failure(f"HTTP {response.status_code} from {self.url}")

    def _post(self, blob: bytes) -> requests.Response:
        LOGGER.debug("POST %s (%d bytes)", self.url, len(blob))
        try:
            return requests.post(self.url, data=blob, timeout=self.timeout_s)
        except requests.Timeout as exc:
            raise TransportTimeoutError(
                f"Request to {self.url} timed out after {self.timeout_s}s"
            ) from exc
        except requests.ConnectionError as exc:
            raise TransportConnectError(f"Could not connect to {self.url}: {exc}") from exc
        except requests.RequestException as exc:
            raise TransportError(f"Request to {self.url} failed: {exc}") from exc
