import asyncio
from typing import Any, Optional

from net.control_link import ControlLink
from net.stream_pump import StreamPump
from nat.rtc_agent import RTCAgent
from session.events import LocalInputClosed
from session.negotiator import SessionNegotiator
from session.state import Phase
from util.config import AppConfig
from util.identity import new_peer_id
from util.log import log
from util.metrics import snapshot as metrics_snapshot
from util.stdio import StdinReader, StdoutSink


async def control_loop(link: Any, negotiator: SessionNegotiator) -> None:
    while True:
        message = await link.receive()
        negotiator.post(message)


async def input_loop(pump: StreamPump, negotiator: SessionNegotiator) -> None:
    await pump.run()
    negotiator.post(LocalInputClosed())


async def _cancel(task: "asyncio.Task") -> None:
    if task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        log("task_cancel_error", task=task.get_name(), error=str(e))


async def serve(local_id: str, link: Any, agent: Any, reader: Any, sink: Any) -> Phase:
    """
    Run one session over an already-open link.

    Returns the terminal phase when the peer connection ends (or input ends
    after the session connected). Any fatal error from the control loop, the
    negotiator or the input pump propagates after everything is released.
    """
    pump = StreamPump(reader, agent.channel, sink)
    negotiator = SessionNegotiator(local_id, link, agent, on_channel_message=pump.deliver)
    agent.subscribe(negotiator.post)
    log("session_start", local_id=local_id)

    session = asyncio.create_task(negotiator.run(), name="negotiator")
    control = asyncio.create_task(control_loop(link, negotiator), name="control")
    inputs = asyncio.create_task(input_loop(pump, negotiator), name="input")
    pending = {session, control, inputs}
    try:
        while True:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            if session in done:
                return session.result()
            if control in done:
                exc = control.exception()
                # the negotiator closes the link itself on the way out
                if exc is not None and not negotiator.state.is_terminal:
                    raise exc
            if inputs in done:
                exc = inputs.exception()
                if exc is not None:
                    raise exc
            if not pending:
                return negotiator.state.phase
    finally:
        for task in (inputs, control, session):
            await _cancel(task)
        try:
            await agent.close()
        except Exception as e:
            log("transport_close_error", local_id=local_id, error=str(e))
        try:
            await link.close()
        except Exception as e:
            log("control_link_close_error", local_id=local_id, error=str(e))
        log("session_end", local_id=local_id, phase=negotiator.state.phase.name, counters=metrics_snapshot())


async def run_session(config: AppConfig, reader: Optional[Any] = None, sink: Optional[Any] = None) -> Phase:
    """Connect to the configured rendezvous service and run one session over stdin/stdout."""
    link = ControlLink(config.server_ip)
    await link.open()
    try:
        agent = RTCAgent(stun_servers=config.stun_servers, label=config.channel_label)
    except BaseException:
        await link.close()
        raise
    return await serve(
        new_peer_id(),
        link,
        agent,
        reader if reader is not None else StdinReader(),
        sink if sink is not None else StdoutSink(),
    )
