import asyncio
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import pytest
from sqlalchemy.exc import OperationalError

from whatsconnect.domain.enums import (
    DeliveryStatus,
    MessageDirection,
    QueryStatus,
    SentimentLabel,
)
from whatsconnect.infra.transport.bus import TransportEventBus
from whatsconnect.infra.transport.events import InboundMessage
from whatsconnect.services.errors import PersistenceError
from whatsconnect.services.ingestion_service import (
    InboundMessageService,
    MessageIngestionPipeline,
)
from tests.unit.fakes import (
    DummySession,
    FakeContactRepository,
    FakeMessageRepository,
    RecordingPublisher,
)

SENT_AT = datetime(2026, 5, 1, 9, 30, tzinfo=UTC)


class StaticNames:
    def __init__(self, name: str | None) -> None:
        self.name = name
        self.calls: list[str] = []

    async def lookup_display_name(self, sender_id: str) -> str | None:
        self.calls.append(sender_id)
        return self.name


def _service(
    contacts: FakeContactRepository | None = None,
    messages: FakeMessageRepository | None = None,
    names: StaticNames | None = None,
    realtime: RecordingPublisher | None = None,
    session: DummySession | None = None,
) -> InboundMessageService:
    return InboundMessageService(
        session=session or DummySession(),
        contact_names=names,
        contacts=contacts or FakeContactRepository(),
        messages=messages or FakeMessageRepository(),
        realtime=realtime,
    )


@pytest.mark.asyncio
async def test_first_message_creates_contact() -> None:
    contacts = FakeContactRepository()
    messages = FakeMessageRepository()
    session = DummySession()
    service = _service(contacts, messages, names=StaticNames("Ana"), session=session)

    result = await service.ingest(
        InboundMessage(
            sender_id="15551234567@c.us",
            body="I have a problem with my order",
            timestamp=SENT_AT,
            message_id="false_1",
        )
    )

    assert result.contact_created
    assert result.contact.phone == "15551234567"
    assert result.contact.display_name == "Ana"
    assert result.contact.query_status == QueryStatus.NEW
    assert result.contact.unread_count == 1
    assert result.contact.last_contacted_at == SENT_AT

    message = messages.messages[0]
    assert message.contact_id == result.contact.id
    assert message.direction == MessageDirection.INBOUND
    assert message.delivery_status == DeliveryStatus.DELIVERED
    assert message.sentiment_label == SentimentLabel.NEGATIVE
    assert message.sentiment_score == 0.7
    assert message.provider_message_id == "false_1"
    assert session.commits == 1


@pytest.mark.asyncio
async def test_missing_profile_name_falls_back_to_customer() -> None:
    service = _service(names=StaticNames(None))

    result = await service.ingest(InboundMessage(sender_id="15551234567@c.us", body="hi"))

    assert result.contact.display_name == "Customer"


@pytest.mark.asyncio
async def test_resolved_contact_is_reopened() -> None:
    contacts = FakeContactRepository()
    contact = contacts.add("15551234567", query_status=QueryStatus.RESOLVED, unread_count=2)
    names = StaticNames("Someone Else")
    service = _service(contacts, names=names)

    result = await service.ingest(
        InboundMessage(sender_id="15551234567@c.us", body="Thanks!", timestamp=SENT_AT)
    )

    assert not result.contact_created
    assert result.contact.id == contact.id
    assert result.contact.query_status == QueryStatus.NEW
    assert result.contact.unread_count == 3
    assert result.contact.display_name == "Ana"
    assert names.calls == []


@pytest.mark.asyncio
async def test_in_progress_contact_keeps_status() -> None:
    contacts = FakeContactRepository()
    contacts.add("15551234567", query_status=QueryStatus.IN_PROGRESS)
    service = _service(contacts)

    result = await service.ingest(InboundMessage(sender_id="15551234567@c.us", body="hello"))

    assert result.contact.query_status == QueryStatus.IN_PROGRESS
    assert result.contact.unread_count == 1
    assert result.message.sentiment_label == SentimentLabel.NEUTRAL


@pytest.mark.asyncio
async def test_naive_timestamps_are_treated_as_utc() -> None:
    service = _service()

    result = await service.ingest(
        InboundMessage(
            sender_id="15551234567@c.us",
            body="hello",
            timestamp=datetime(2026, 5, 1, 9, 30),
        )
    )

    assert result.message.timestamp == SENT_AT


@pytest.mark.asyncio
async def test_sender_without_digits_is_rejected() -> None:
    service = _service()

    with pytest.raises(ValueError):
        await service.ingest(InboundMessage(sender_id="status@broadcast", body="hi"))


@pytest.mark.asyncio
async def test_database_failure_rolls_back() -> None:
    messages = FakeMessageRepository()
    messages.fail_on_create = OperationalError("INSERT", {}, Exception("db down"))
    session = DummySession()
    service = _service(messages=messages, session=session)

    with pytest.raises(PersistenceError):
        await service.ingest(InboundMessage(sender_id="15551234567@c.us", body="hi"))

    assert session.rollbacks == 1
    assert session.commits == 0


@pytest.mark.asyncio
async def test_ingestion_publishes_realtime_events() -> None:
    realtime = RecordingPublisher()
    service = _service(realtime=realtime)

    result = await service.ingest(InboundMessage(sender_id="15551234567@c.us", body="hi"))

    assert realtime.names == ["message.created", "contact.updated"]
    channels = realtime.events[0][0]
    assert channels == ["conversations", f"contact:{result.contact.id}"]


@pytest.mark.asyncio
async def test_pipeline_processes_events_in_order() -> None:
    bus = TransportEventBus()
    contacts = FakeContactRepository()
    messages = FakeMessageRepository()

    @asynccontextmanager
    async def session_factory():
        yield DummySession()

    pipeline = MessageIngestionPipeline(
        bus=bus,
        session_factory=session_factory,
        service_factory=lambda session: InboundMessageService(
            session=session, contacts=contacts, messages=messages
        ),
    )
    pipeline.start()
    assert bus.handler_count(InboundMessage) == 1

    for body in ("first", "second", "third"):
        await bus.publish(InboundMessage(sender_id="15551234567@c.us", body=body))
    await asyncio.wait_for(pipeline.drain(), timeout=1)

    assert [message.body for message in messages.messages] == ["first", "second", "third"]
    assert len(contacts.contacts) == 1
    assert next(iter(contacts.contacts.values())).unread_count == 3

    await pipeline.stop()
    assert not pipeline.running
    assert bus.handler_count(InboundMessage) == 0


@pytest.mark.asyncio
async def test_pipeline_survives_a_failing_event() -> None:
    bus = TransportEventBus()
    messages = FakeMessageRepository()

    @asynccontextmanager
    async def session_factory():
        yield DummySession()

    pipeline = MessageIngestionPipeline(
        bus=bus,
        session_factory=session_factory,
        service_factory=lambda session: InboundMessageService(
            session=session, contacts=FakeContactRepository(), messages=messages
        ),
    )
    pipeline.start()

    await bus.publish(InboundMessage(sender_id="status@broadcast", body="dropped"))
    await bus.publish(InboundMessage(sender_id="15551234567@c.us", body="kept"))
    await asyncio.wait_for(pipeline.drain(), timeout=1)

    assert [message.body for message in messages.messages] == ["kept"]
    await pipeline.stop()


@pytest.mark.asyncio
async def test_full_queue_drops_new_events() -> None:
    @asynccontextmanager
    async def session_factory():
        yield DummySession()

    pipeline = MessageIngestionPipeline(
        bus=TransportEventBus(),
        session_factory=session_factory,
        queue_size=1,
    )

    await pipeline.enqueue(InboundMessage(sender_id="15551234567@c.us", body="one"))
    await pipeline.enqueue(InboundMessage(sender_id="15551234567@c.us", body="two"))

    assert pipeline.backlog == 1
