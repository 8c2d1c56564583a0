import asyncio
import sys
import threading
from typing import BinaryIO, Optional, TextIO, Union


class StdinReader:
    """
    Line reader over a blocking binary stream.

    A daemon thread does the blocking reads so a pending read never holds up
    interpreter shutdown; lines are handed to the event loop through a queue.
    """

    def __init__(self, stream: Optional[BinaryIO] = None) -> None:
        self._stream = stream if stream is not None else sys.stdin.buffer
        self._queue: "Optional[asyncio.Queue[Union[bytes, OSError]]]" = None
        self._thread: Optional[threading.Thread] = None

    def _start(self) -> None:
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        queue = self._queue

        def _read_lines() -> None:
            while True:
                try:
                    line = self._stream.readline()
                except OSError as e:
                    loop.call_soon_threadsafe(queue.put_nowait, e)
                    return
                loop.call_soon_threadsafe(queue.put_nowait, line)
                if not line:
                    return

        self._thread = threading.Thread(target=_read_lines, name="stdin-reader", daemon=True)
        self._thread.start()

    async def readline(self) -> bytes:
        if self._queue is None:
            self._start()
        item = await self._queue.get()
        if isinstance(item, OSError):
            raise item
        return item


class StdoutSink:
    """Text frames go out as text, binary frames as the raw bytes."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def write_text(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()

    def write_binary(self, data: bytes) -> None:
        # flush pending text first so frames keep their order
        self._stream.flush()
        self._stream.buffer.write(data)
        self._stream.buffer.flush()
