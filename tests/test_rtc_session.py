# tests/test_rtc_session.py
import asyncio
import contextlib
import socket

import pytest

from nat.rtc_agent import RTCAgent
from net.messages import RegistrationRequest, RegistrationResponse
from session.driver import serve
from util.errors import TransportError


def _has_routable_ipv4() -> bool:
    # UDP connect sends nothing; it only asks the kernel for a route
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("192.0.2.1", 9))
        return not s.getsockname()[0].startswith("127.")
    except OSError:
        return False
    finally:
        s.close()


# ----------------------------
# In-memory rendezvous
# ----------------------------
class Rendezvous:
    """Pairs the first two registrants and relays everything else by target_id."""
    def __init__(self):
        self.links = {}
        self.waiting = None

    def route(self, link, message):
        if isinstance(message, RegistrationRequest):
            self.links[message.sender] = link
            if self.waiting is None:
                self.waiting = message.sender
                return
            first, self.waiting = self.waiting, None
            link.deliver(RegistrationResponse(sender=message.sender, target=first, request="offer"))
            return
        self.links[message.target].deliver(message)


class LoopLink:
    def __init__(self, hub: Rendezvous):
        self.hub = hub
        self.inbox = asyncio.Queue()
        self.closed = False

    def deliver(self, message):
        self.inbox.put_nowait(message)

    async def send(self, message):
        if self.closed:
            raise TransportError("closed")
        self.hub.route(self, message)

    async def receive(self):
        item = await self.inbox.get()
        if item is None:
            raise TransportError("closed")
        return item

    async def close(self):
        if not self.closed:
            self.closed = True
            self.inbox.put_nowait(None)


class RecordingSink:
    def __init__(self):
        self.frames = []

    def write_text(self, text):
        self.frames.append(text)

    def write_binary(self, data):
        self.frames.append(data)


@pytest.mark.asyncio
@pytest.mark.skipif(not _has_routable_ipv4(), reason="needs a non-loopback IPv4 interface for ICE")
async def test_two_peers_exchange_text_and_binary_lines():
    hub = Rendezvous()

    # Peer A types two lines; peer B only listens
    reader_a = asyncio.StreamReader()
    reader_a.feed_data(b"hello from A\n")
    reader_a.feed_data(b"\xff\x00\xfe raw\n")
    reader_b = asyncio.StreamReader()
    sink_a, sink_b = RecordingSink(), RecordingSink()

    agent_a = RTCAgent(stun_servers=[])
    agent_b = RTCAgent(stun_servers=[])
    task_a = asyncio.create_task(serve("A", LoopLink(hub), agent_a, reader_a, sink_a))
    task_b = asyncio.create_task(serve("B", LoopLink(hub), agent_b, reader_b, sink_b))

    async def _received_both():
        while len(sink_b.frames) < 2:
            if task_a.done() or task_b.done():
                break
            await asyncio.sleep(0.05)

    try:
        await asyncio.wait_for(_received_both(), 30.0)
        assert sink_b.frames == ["hello from A\n", b"\xff\x00\xfe raw\n"]
        assert sink_a.frames == []
    finally:
        for task in (task_a, task_b):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
