from typing import Any, Union

from util.errors import InputError
from util.log import log
from util.metrics import incr


def is_binary(data: bytes) -> bool:
    """Anything that is not valid UTF-8 travels as a binary frame."""
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return True
    return False


class StreamPump:
    """
    Moves local input lines onto the byte channel and inbound frames onto
    local output, byte for byte.

    ``reader`` needs ``async readline() -> bytes`` (empty at end-of-stream),
    ``channel`` needs ``wait_open()``, ``send_text(str)`` and ``send_binary(bytes)``,
    ``sink`` needs ``write_text(str)`` and ``write_binary(bytes)``.
    """

    def __init__(self, reader: Any, channel: Any, sink: Any) -> None:
        self.reader = reader
        self.channel = channel
        self.sink = sink

    async def run(self) -> None:
        """Pump until end-of-stream. Read failures raise InputError, send failures ChannelError."""
        while True:
            try:
                line = await self.reader.readline()
            except OSError as e:
                raise InputError(f"stdin read error: {e}") from e
            if not line:
                log("input_eof")
                return
            await self.channel.wait_open()
            self.send_line(line)

    def send_line(self, line: bytes) -> str:
        if is_binary(line):
            self.channel.send_binary(line)
            incr("frames_binary_sent", 1)
            return "binary"
        self.channel.send_text(line.decode("utf-8"))
        incr("frames_text_sent", 1)
        return "text"

    def deliver(self, data: Union[str, bytes]) -> None:
        if isinstance(data, str):
            self.sink.write_text(data)
        else:
            self.sink.write_binary(bytes(data))
