"""
Events the transport and the local input deliver into the negotiator.

Inbound control messages are posted as-is; everything else is wrapped in one
of these so both sources share a single processing path.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Event:
    pass


@dataclass(frozen=True)
class CandidateDiscovered(Event):
    """The transport found a local connectivity candidate."""
    candidate: str


@dataclass(frozen=True)
class ConnectionStateChanged(Event):
    """Peer connection moved to a new state ("connecting", "connected", "failed", ...)."""
    state: str


@dataclass(frozen=True)
class ChannelMessage(Event):
    """Data arrived on the byte channel; ``str`` is a text frame, ``bytes`` a binary one."""
    data: Union[str, bytes]


@dataclass(frozen=True)
class LocalInputClosed(Event):
    """Local input reached end-of-stream."""
    pass
