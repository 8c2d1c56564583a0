import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from net.messages import ControlMessage, MalformedMessage, decode, encode
from util.errors import TransportError
from util.log import log
from util.metrics import incr


class ControlLink:
    """
    Duplex channel to the rendezvous service: one JSON control message per
    WebSocket text frame. Nothing here retries; every failure surfaces as
    TransportError.
    """

    def __init__(self, url: str) -> None:
        self.url = url
        self._ws = None
        self._closed = False

    async def open(self) -> None:
        try:
            self._ws = await websockets.connect(self.url)
        except (OSError, InvalidURI, InvalidHandshake) as e:
            raise TransportError(f"cannot reach rendezvous {self.url}: {e}") from e
        log("control_link_open", url=self.url)

    async def send(self, message: ControlMessage) -> None:
        ws = self._ws
        if ws is None or self._closed:
            raise TransportError("control link is not open")
        try:
            await ws.send(encode(message))
        except ConnectionClosed as e:
            raise TransportError(f"control link closed while sending {message.type}: {e}") from e
        incr("control_sent", 1)
        log("control_sent", type=message.type, target_id=message.target)

    async def receive(self) -> ControlMessage:
        ws = self._ws
        if ws is None or self._closed:
            raise TransportError("control link is not open")
        try:
            raw = await ws.recv()
        except ConnectionClosed as e:
            raise TransportError(f"control link closed: {e}") from e
        try:
            message = decode(raw)
        except MalformedMessage as e:
            raise TransportError(f"malformed control message: {e}") from e
        incr("control_received", 1)
        log("control_received", type=message.type, id=message.sender)
        return message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._ws is not None:
            await self._ws.close()
        log("control_link_closed", url=self.url)
