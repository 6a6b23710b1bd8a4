"""Transport interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union


@dataclass(frozen=True)
class Data:
    blob: bytes


@dataclass(frozen=True)
class NoMoreWork:
    pass


@dataclass(frozen=True)
class Failure:
    reason: str


Outcome = Union[Data, NoMoreWork, Failure]


class Transport(Protocol):
    def exchange(self, blob: bytes) -> Outcome:
        """Send one request blob and return what the network answered."""
