import asyncio
from typing import Any, Callable, Optional, Union

from net.messages import (
    ControlMessage,
    ConnectivityCandidate,
    RegistrationRequest,
    RegistrationResponse,
    SessionAnswer,
    SessionOffer,
)
from session.candidate_buffer import CandidateBuffer
from session.events import (
    CandidateDiscovered,
    ChannelMessage,
    ConnectionStateChanged,
    Event,
    LocalInputClosed,
)
from session.state import (
    TERMINAL_CONNECTION_STATES,
    Phase,
    Role,
    SessionDescription,
    SessionState,
)
from util.errors import ProtocolViolation
from util.log import log
from util.metrics import incr


class SessionNegotiator:
    """
    Turns inbound control messages and transport events into one peer session.

    All state lives here and is touched by a single task: ``run()`` drains an
    event queue that the control loop and the transport callbacks post into, so
    a candidate discovered while a description is being created simply waits in
    the queue and goes out after the description does.

    ``link`` needs ``send(message)`` and ``close()``. ``transport`` needs
    ``create_offer()``, ``create_answer()``, ``set_local_description(desc)``
    (returning the description actually applied), ``set_remote_description(desc)``,
    ``add_remote_candidate(text)`` and ``close()``, all awaitable.
    """

    def __init__(
        self,
        local_id: str,
        link: Any,
        transport: Any,
        on_channel_message: Optional[Callable[[Union[str, bytes]], None]] = None,
    ) -> None:
        self.local_id = local_id
        self.link = link
        self.transport = transport
        self.state = SessionState()
        self.buffer = CandidateBuffer()
        self._on_channel_message = on_channel_message
        self._events: "asyncio.Queue[Union[ControlMessage, Event]]" = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass

        self._message_handlers = {
            RegistrationResponse: self._on_registration_response,
            SessionOffer: self._on_offer,
            SessionAnswer: self._on_answer,
            ConnectivityCandidate: self._on_remote_candidate,
        }

    # ------------- event intake -------------
    def post(self, event: Union[ControlMessage, Event]) -> None:
        """Queue an event; callable from the event loop or from any other thread."""
        loop = self._loop
        if loop is not None:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not loop:
                loop.call_soon_threadsafe(self._events.put_nowait, event)
                return
        self._events.put_nowait(event)

    async def start(self) -> None:
        if self.state.phase is not Phase.IDLE:
            return
        self._loop = asyncio.get_running_loop()
        await self.link.send(RegistrationRequest(sender=self.local_id))
        self._enter(Phase.REQUESTING)

    async def run(self) -> Phase:
        """Register, then process events until the session ends. Returns the terminal phase."""
        await self.start()
        while not self.state.is_terminal:
            event = await self._events.get()
            await self.handle(event)
        return self.state.phase

    async def handle(self, event: Union[ControlMessage, Event]) -> None:
        if self.state.is_terminal:
            log("event_after_end", local_id=self.local_id, kind=type(event).__name__)
            return
        try:
            if isinstance(event, ControlMessage):
                await self._on_message(event)
            elif isinstance(event, CandidateDiscovered):
                await self._on_candidate_discovered(event.candidate)
            elif isinstance(event, ConnectionStateChanged):
                await self._on_connection_state(event.state)
            elif isinstance(event, ChannelMessage):
                self._on_channel_data(event.data)
            elif isinstance(event, LocalInputClosed):
                await self._on_input_closed()
            else:
                raise ProtocolViolation(f"unknown event {event!r}")
        except ProtocolViolation as e:
            incr("protocol_violations", 1)
            log("protocol_violation", local_id=self.local_id, phase=self.state.phase.name, reason=str(e))

    # ------------- control messages -------------
    async def _on_message(self, message: ControlMessage) -> None:
        handler = self._message_handlers.get(type(message))
        if handler is None:
            raise ProtocolViolation(f"unexpected message type {message.type!r}")
        await handler(message)

    async def _on_registration_response(self, message: RegistrationResponse) -> None:
        if self.state.role is not Role.UNASSIGNED:
            raise ProtocolViolation(f"registration response while already {self.state.role.name}")
        if self.state.phase is not Phase.REQUESTING:
            raise ProtocolViolation("registration response outside Requesting")
        if message.request != "offer":
            raise ProtocolViolation(f"unsupported registration request {message.request!r}")
        if not message.peer_target:
            raise ProtocolViolation("registration response without a peer")

        self.state.role = Role.INITIATOR
        self.state.peer = message.peer_target
        self._enter(Phase.OFFERING)

        offer = await self.transport.create_offer()
        applied = await self.transport.set_local_description(offer)
        await self._publish_local_description(applied)

    async def _on_offer(self, message: SessionOffer) -> None:
        if self.state.role is not Role.UNASSIGNED:
            raise ProtocolViolation(f"offer while already {self.state.role.name}")
        self._require_addressed_to_us(message)
        if not message.sender:
            raise ProtocolViolation("offer without sender id")
        if not message.offer:
            raise ProtocolViolation("offer without description")

        self.state.role = Role.RESPONDER
        self.state.peer = message.sender
        self._enter(Phase.ANSWERING)

        await self.transport.set_remote_description(SessionDescription("offer", message.offer))
        answer = await self.transport.create_answer()
        applied = await self.transport.set_local_description(answer)
        await self._publish_local_description(applied)
        self._enter(Phase.NEGOTIATING)

    async def _on_answer(self, message: SessionAnswer) -> None:
        if self.state.role is not Role.INITIATOR or self.state.phase is not Phase.OFFERING:
            raise ProtocolViolation(f"answer in phase {self.state.phase.name}")
        self._require_addressed_to_us(message)
        self._require_from_peer(message)
        if not message.answer:
            raise ProtocolViolation("answer without description")

        await self.transport.set_remote_description(SessionDescription("answer", message.answer))
        self._enter(Phase.NEGOTIATING)

    async def _on_remote_candidate(self, message: ConnectivityCandidate) -> None:
        if self.state.phase not in (Phase.NEGOTIATING, Phase.CONNECTED):
            raise ProtocolViolation(f"remote candidate in phase {self.state.phase.name}")
        self._require_addressed_to_us(message)
        self._require_from_peer(message)
        if not message.candidate:
            raise ProtocolViolation("candidate message without candidate")

        await self.transport.add_remote_candidate(message.candidate)
        incr("candidates_added", 1)
        log("remote_candidate_added", local_id=self.local_id, peer=self.state.peer)

    def _require_addressed_to_us(self, message: ControlMessage) -> None:
        if message.target and message.target != self.local_id:
            raise ProtocolViolation(f"{message.type} addressed to {message.target!r}")

    def _require_from_peer(self, message: ControlMessage) -> None:
        if message.sender != self.state.peer:
            raise ProtocolViolation(f"{message.type} from {message.sender!r}, peer is {self.state.peer!r}")

    async def _publish_local_description(self, desc: SessionDescription) -> None:
        # Flush point: from here on discovered candidates go straight out.
        self.state.local_description_ready = True
        pending = self.buffer.flush_to(self.state.peer)
        if desc.type == "offer":
            await self.link.send(SessionOffer(sender=self.local_id, target=self.state.peer, offer=desc.sdp))
        else:
            await self.link.send(SessionAnswer(sender=self.local_id, target=self.state.peer, answer=desc.sdp))
        log("local_description_sent", local_id=self.local_id, type=desc.type, peer=self.state.peer,
            flushed=len(pending))
        for candidate in pending:
            await self._send_candidate(candidate)
        incr("candidates_flushed", len(pending))

    # ------------- transport events -------------
    async def _on_candidate_discovered(self, candidate: str) -> None:
        if not candidate:
            return
        if not self.state.local_description_ready or not self.state.peer:
            self.buffer.append(candidate)
            incr("candidates_buffered", 1)
            log("candidate_buffered", local_id=self.local_id, pending=len(self.buffer))
            return
        await self._send_candidate(candidate)

    async def _send_candidate(self, candidate: str) -> None:
        await self.link.send(ConnectivityCandidate(sender=self.local_id, target=self.state.peer, candidate=candidate))
        incr("candidates_sent", 1)

    async def _on_connection_state(self, state: str) -> None:
        log("connection_state", local_id=self.local_id, state=state)
        if state == "connected":
            if self.state.phase is not Phase.CONNECTED:
                self._enter(Phase.CONNECTED)
            return
        terminal = TERMINAL_CONNECTION_STATES.get(state)
        if terminal is not None:
            await self._finish(terminal)

    def _on_channel_data(self, data: Union[str, bytes]) -> None:
        incr("frames_received", 1)
        if self._on_channel_message is not None:
            self._on_channel_message(data)

    async def _on_input_closed(self) -> None:
        if self.state.phase is not Phase.CONNECTED:
            log("input_closed_before_connect", local_id=self.local_id, phase=self.state.phase.name)
            return
        await self._finish(Phase.CLOSED)

    async def _finish(self, phase: Phase) -> None:
        self._enter(phase)
        try:
            await self.transport.close()
        except Exception as e:
            log("transport_close_error", local_id=self.local_id, error=str(e))
        try:
            await self.link.close()
        except Exception as e:
            log("control_link_close_error", local_id=self.local_id, error=str(e))

    def _enter(self, phase: Phase) -> None:
        self.state.enter(phase)
        log("phase", local_id=self.local_id, phase=phase.name, role=self.state.role.name)
