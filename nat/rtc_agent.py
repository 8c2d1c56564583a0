# nat/rtc_agent.py
import asyncio
import logging
from typing import Callable, List, Optional, Union

from aiortc import (
    RTCConfiguration,
    RTCDataChannel,
    RTCIceCandidate,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.exceptions import InvalidAccessError, InvalidStateError

from nat.candidates import candidate_from_text, candidate_to_text
from session.events import CandidateDiscovered, ChannelMessage, ConnectionStateChanged
from session.state import SessionDescription
from util.config import DEFAULT_CHANNEL_LABEL, DEFAULT_STUN_SERVERS
from util.errors import ChannelError, DescriptionError
from util.log import log
from util.metrics import incr

logger = logging.getLogger(__name__)

_DRAIN_POLL = 0.05  # seconds

_RTC_ERRORS = (InvalidAccessError, InvalidStateError, ValueError)


class ByteChannel:
    """The local data channel as StreamPump sees it: text frames, binary frames, open/closed."""

    def __init__(self, channel: RTCDataChannel):
        self._channel = channel
        self._opened = asyncio.Event()
        if channel.readyState == "open":
            self._opened.set()

        @channel.on("open")
        def _on_open():
            self._opened.set()
            log("channel_open", label=channel.label)

        @channel.on("close")
        def _on_close():
            log("channel_closed", label=channel.label)

    @property
    def label(self) -> str:
        return self._channel.label

    def is_open(self) -> bool:
        return self._channel.readyState == "open"

    async def wait_open(self) -> None:
        await self._opened.wait()

    def send_text(self, text: str) -> None:
        self._send(text)

    def send_binary(self, data: bytes) -> None:
        self._send(data)

    def _send(self, payload: Union[str, bytes]) -> None:
        if not self.is_open():
            raise ChannelError(f"channel {self.label!r} is {self._channel.readyState}")
        try:
            self._channel.send(payload)
        except (InvalidStateError, ValueError) as e:
            raise ChannelError(f"channel {self.label!r} rejected frame: {e}") from e

    async def drain(self) -> None:
        """Wait until queued frames have been handed to the transport."""
        while self.is_open() and self._channel.bufferedAmount > 0:
            await asyncio.sleep(_DRAIN_POLL)


class RTCAgent:
    """
    Peer-to-peer transport capability over aiortc: one peer connection carrying
    one data channel. Events are reported through the ``post`` callable given
    to subscribe(); nothing here touches session state.
    """

    def __init__(self, stun_servers: Optional[List[str]] = None, label: str = DEFAULT_CHANNEL_LABEL):
        if stun_servers is None:
            stun_servers = DEFAULT_STUN_SERVERS
        self.label = label
        self.pc = RTCPeerConnection(
            configuration=RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in stun_servers])
        )
        self._local = self.pc.createDataChannel(label)
        self.channel = ByteChannel(self._local)
        self._closed = False

    def subscribe(self, post: Callable[[object], None]) -> None:
        """Route transport callbacks into ``post`` as session events."""

        @self.pc.on("icecandidate")
        def _on_icecandidate(candidate: Optional[RTCIceCandidate]):
            if candidate is None:
                return
            post(CandidateDiscovered(candidate_to_text(candidate)))

        @self.pc.on("connectionstatechange")
        def _on_state():
            post(ConnectionStateChanged(self.pc.connectionState))

        @self.pc.on("datachannel")
        def _on_datachannel(channel: RTCDataChannel):
            if channel.label != self.label:
                incr("unknown_channels", 1)
                log("unknown_channel", label=channel.label)
                return
            log("remote_channel", label=channel.label)
            self._watch_messages(channel, post)

        self._watch_messages(self._local, post)

    @staticmethod
    def _watch_messages(channel: RTCDataChannel, post: Callable[[object], None]) -> None:
        @channel.on("message")
        def _on_message(message: Union[str, bytes]):
            post(ChannelMessage(message))

    # ---------------- descriptions ----------------
    async def create_offer(self) -> SessionDescription:
        try:
            desc = await self.pc.createOffer()
        except _RTC_ERRORS as e:
            raise DescriptionError(f"create offer: {e}") from e
        return SessionDescription(desc.type, desc.sdp)

    async def create_answer(self) -> SessionDescription:
        try:
            desc = await self.pc.createAnswer()
        except _RTC_ERRORS as e:
            raise DescriptionError(f"create answer: {e}") from e
        return SessionDescription(desc.type, desc.sdp)

    async def set_local_description(self, desc: SessionDescription) -> SessionDescription:
        try:
            await self.pc.setLocalDescription(RTCSessionDescription(sdp=desc.sdp, type=desc.type))
        except _RTC_ERRORS as e:
            raise DescriptionError(f"set local {desc.type}: {e}") from e
        # aiortc gathers during setLocalDescription and folds candidates into the SDP
        applied = self.pc.localDescription
        logger.info("local %s set", applied.type)
        return SessionDescription(applied.type, applied.sdp)

    async def set_remote_description(self, desc: SessionDescription) -> None:
        try:
            await self.pc.setRemoteDescription(RTCSessionDescription(sdp=desc.sdp, type=desc.type))
        except _RTC_ERRORS as e:
            raise DescriptionError(f"set remote {desc.type}: {e}") from e
        logger.info("remote %s set", desc.type)

    async def add_remote_candidate(self, text: str) -> None:
        try:
            candidate = candidate_from_text(text)
        except (ValueError, IndexError) as e:
            raise DescriptionError(f"bad remote candidate {text!r}: {e}") from e
        try:
            await self.pc.addIceCandidate(candidate)
        except _RTC_ERRORS as e:
            raise DescriptionError(f"add remote candidate: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.channel.drain()
        await self.pc.close()
        log("peer_connection_closed", label=self.label)
