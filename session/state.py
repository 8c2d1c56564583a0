from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List


class Role(Enum):
    UNASSIGNED = auto()
    INITIATOR  = auto()
    RESPONDER  = auto()


class Phase(Enum):
    IDLE         = auto()
    REQUESTING   = auto()
    OFFERING     = auto()
    ANSWERING    = auto()
    NEGOTIATING  = auto()
    CONNECTED    = auto()
    CLOSED       = auto()
    FAILED       = auto()
    DISCONNECTED = auto()


TERMINAL_PHASES = frozenset({Phase.CLOSED, Phase.FAILED, Phase.DISCONNECTED})

# peer connection states reported by the transport that end the session
TERMINAL_CONNECTION_STATES = {
    "closed": Phase.CLOSED,
    "failed": Phase.FAILED,
    "disconnected": Phase.DISCONNECTED,
}


@dataclass(frozen=True)
class SessionDescription:
    type: str  # "offer" | "answer"
    sdp: str


@dataclass
class SessionState:
    role: Role = Role.UNASSIGNED
    peer: str = ""
    local_description_ready: bool = False
    phase: Phase = Phase.IDLE
    history: List[Phase] = field(default_factory=lambda: [Phase.IDLE])

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def enter(self, phase: Phase) -> None:
        self.phase = phase
        self.history.append(phase)
