import time
import threading
from typing import Dict


class _Counters:
    """Named counters shared by the control loop, the negotiator and the stdin thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: Dict[str, int] = {}

    def add(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._values[name] = self._values.get(name, 0) + value

    def value(self, name: str) -> int:
        with self._lock:
            return self._values.get(name, 0)

    def copy(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._values)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()


COUNTERS = _Counters()


def incr(name: str, value: int = 1) -> None:
    COUNTERS.add(name, value)


def get(name: str) -> int:
    return COUNTERS.value(name)


def snapshot() -> Dict[str, int]:
    return COUNTERS.copy()


def reset() -> None:
    COUNTERS.clear()


def now_ms() -> int:
    return int(time.time() * 1000)
