import json
import logging
import sys
from typing import Any

from util.metrics import now_ms

# stdout carries session payload, so records always go to stderr.
_enabled = False


def configure(enabled: bool) -> None:
    """Turn event records on or off; off mirrors a quiet terminal session."""
    global _enabled
    _enabled = enabled
    logging.basicConfig(
        level=logging.INFO if enabled else logging.CRITICAL,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def log(event: str, **fields: Any) -> None:
    if not _enabled:
        return
    record = {"ts_ms": now_ms(), "event": event}
    record.update(fields)
    print(json.dumps(record, separators=(",", ":"), default=str), file=sys.stderr, flush=True)
