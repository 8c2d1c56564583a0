from collections import deque
from typing import Deque, List


class CandidateBuffer:
    """
    Local candidates discovered before we can address them: either the local
    description is not set yet or we do not know the peer. Flushed once, in
    discovery order, right after the local description is applied.
    """

    def __init__(self) -> None:
        self._pending: Deque[str] = deque()

    def append(self, candidate: str) -> None:
        self._pending.append(candidate)

    def flush_to(self, peer: str) -> List[str]:
        if not peer:
            raise ValueError("cannot flush candidates to an unknown peer")
        out = list(self._pending)
        self._pending.clear()
        return out

    def __len__(self) -> int:
        return len(self._pending)
