import pytest

from whatsconnect.domain.enums import SessionState
from whatsconnect.infra.transport.events import InboundMessage
from whatsconnect.infra.transport.loopback import LoopbackTransport
from whatsconnect.services.connection_manager import ConnectionManager


@pytest.mark.asyncio
async def test_loopback_session_pairs_sends_and_receives() -> None:
    transports: list[LoopbackTransport] = []

    def factory(emit) -> LoopbackTransport:
        transport = LoopbackTransport(emit)
        transports.append(transport)
        return transport

    manager = ConnectionManager(transport_factory=factory)
    received: list[InboundMessage] = []

    async def on_inbound(event: InboundMessage) -> None:
        received.append(event)

    manager.bus.subscribe(InboundMessage, on_inbound)
    await manager.start()
    assert manager.state == SessionState.READY

    sent = await manager.send("15551234567", "hello")
    assert transports[0].outbox[0][0] == "15551234567@c.us"
    assert sent.id.startswith("true_15551234567@c.us")

    await transports[0].deliver_inbound("15557654321@c.us", "hi there")
    assert [event.body for event in received] == ["hi there"]

    await manager.stop(logout=False)
    assert not transports[0].is_ready


@pytest.mark.asyncio
async def test_loopback_waits_for_pairing_when_not_auto_paired() -> None:
    transports: list[LoopbackTransport] = []

    def factory(emit) -> LoopbackTransport:
        transport = LoopbackTransport(emit, auto_pair=False)
        transports.append(transport)
        return transport

    manager = ConnectionManager(transport_factory=factory)
    await manager.start()

    assert manager.state == SessionState.AWAITING_SCAN
    code = (await manager.get_pairing_artifact()).pairing_code
    assert code is not None and code.startswith("loopback@")

    await transports[0].complete_pairing()
    assert manager.state == SessionState.READY
