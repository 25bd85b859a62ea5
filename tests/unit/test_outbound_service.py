from datetime import UTC, datetime

import pytest

from whatsconnect.domain.enums import (
    DeliveryStatus,
    MessageDirection,
    QueryStatus,
    SendFailure,
    SessionState,
    ValidationFailure,
)
from whatsconnect.infra.transport.base import SentMessage
from whatsconnect.services.connection_manager import SessionStatus
from whatsconnect.services.errors import NotReadyError, SendError, SendValidationError
from whatsconnect.services.outbound_service import OutboundMessageService, validate_outbound
from tests.unit.fakes import (
    DummySession,
    FakeContactRepository,
    FakeMessageRepository,
    RecordingPublisher,
)

NOW = datetime(2026, 5, 1, 10, 0, tzinfo=UTC)


class FakeDispatcher:
    def __init__(self, connected: bool = True, error: Exception | None = None) -> None:
        self.connected = connected
        self.error = error
        self.drop_on_error = False
        self.sent: list[tuple[str, str]] = []

    def get_status(self) -> SessionStatus:
        return SessionStatus(
            connected=self.connected,
            has_pairing_code=False,
            state=SessionState.READY if self.connected else SessionState.DISCONNECTED,
            retry_count=0,
            last_error=None,
        )

    async def send(self, phone: str, body: str) -> SentMessage:
        if self.error is not None:
            if self.drop_on_error:
                self.connected = False
            raise self.error
        self.sent.append((phone, body))
        return SentMessage(id=f"true_{phone}@c.us_{len(self.sent)}", timestamp=NOW)


def _service(
    dispatcher: FakeDispatcher,
    contacts: FakeContactRepository | None = None,
    messages: FakeMessageRepository | None = None,
    session: DummySession | None = None,
    realtime: RecordingPublisher | None = None,
) -> OutboundMessageService:
    return OutboundMessageService(
        session=session or DummySession(),
        dispatcher=dispatcher,
        contacts=contacts or FakeContactRepository(),
        messages=messages or FakeMessageRepository(),
        realtime=realtime,
        clock=lambda: NOW,
    )


def test_validation_cleans_phone_and_body() -> None:
    assert validate_outbound("+1 (555) 123-4567", "  hello  ") == ("15551234567", "hello")


@pytest.mark.parametrize(
    ("phone", "body", "reason"),
    [
        ("", "hi", ValidationFailure.EMPTY_PHONE),
        ("+1-555", "hi", ValidationFailure.TOO_SHORT),
        ("1234567890123456", "hi", ValidationFailure.TOO_LONG),
        ("15551234567", "   ", ValidationFailure.EMPTY_MESSAGE),
        ("15551234567", None, ValidationFailure.EMPTY_MESSAGE),
    ],
)
def test_validation_failures(phone: str, body: str | None, reason: ValidationFailure) -> None:
    with pytest.raises(SendValidationError) as exc_info:
        validate_outbound(phone, body)
    assert exc_info.value.reason == reason


def test_short_phone_message_mentions_digit_count() -> None:
    with pytest.raises(SendValidationError) as exc_info:
        validate_outbound("12345", "hi")
    assert "too short (5 digits)" in str(exc_info.value)


@pytest.mark.asyncio
async def test_not_ready_is_checked_first() -> None:
    dispatcher = FakeDispatcher(connected=False)

    with pytest.raises(NotReadyError):
        await _service(dispatcher).send("", "")

    assert dispatcher.sent == []


@pytest.mark.asyncio
async def test_invalid_input_is_never_dispatched() -> None:
    dispatcher = FakeDispatcher()

    with pytest.raises(SendValidationError):
        await _service(dispatcher).send("123", "hello")

    assert dispatcher.sent == []


@pytest.mark.asyncio
async def test_send_to_unknown_phone_creates_contact() -> None:
    dispatcher = FakeDispatcher()
    contacts = FakeContactRepository()
    messages = FakeMessageRepository()
    session = DummySession()

    result = await _service(dispatcher, contacts, messages, session).send(
        "+1 555 123 4567", "Your order has shipped"
    )

    assert dispatcher.sent == [("15551234567", "Your order has shipped")]
    assert result.message_id == "true_15551234567@c.us_1"
    assert result.persisted
    assert result.contact is not None
    assert result.contact.display_name == "Customer 4567"
    assert result.contact.unread_count == 0
    assert result.contact.query_status == QueryStatus.IN_PROGRESS
    assert result.contact.last_contacted_at == NOW

    message = messages.messages[0]
    assert message.direction == MessageDirection.OUTBOUND
    assert message.delivery_status == DeliveryStatus.SENT
    assert message.provider_message_id == result.message_id
    assert message.contact_id == result.contact.id
    assert session.commits == 1


@pytest.mark.asyncio
async def test_reply_moves_new_contact_in_progress_only_once() -> None:
    contacts = FakeContactRepository()
    contact = contacts.add("15551234567", unread_count=4)
    service = _service(FakeDispatcher(), contacts)

    result = await service.send("15551234567", "On it", contact_id=contact.id)
    assert result.contact is contact
    assert contact.query_status == QueryStatus.IN_PROGRESS
    assert contact.unread_count == 4

    contact.query_status = QueryStatus.RESOLVED
    await service.send("15551234567", "Anything else?", contact_id=contact.id)
    assert contact.query_status == QueryStatus.RESOLVED


@pytest.mark.asyncio
async def test_contact_id_with_other_phone_falls_back_to_phone() -> None:
    contacts = FakeContactRepository()
    other = contacts.add("15550000000")
    target = contacts.add("15551234567")

    result = await _service(FakeDispatcher(), contacts).send(
        "15551234567", "hello", contact_id=other.id
    )

    assert result.contact is target


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "category"),
    [
        (RuntimeError("Evaluation failed: t: t"), SendFailure.NOT_REGISTERED),
        (RuntimeError("Protocol error (Runtime.callFunctionOn): Target closed."), SendFailure.SESSION_LOST),
        (RuntimeError("Navigation timeout of 30000 ms exceeded"), SendFailure.TIMEOUT),
        (RuntimeError("rate limit reached"), SendFailure.RATE_LIMITED),
        (RuntimeError("kaboom"), SendFailure.UNKNOWN),
    ],
)
async def test_dispatch_errors_are_classified(error: Exception, category: SendFailure) -> None:
    messages = FakeMessageRepository()

    with pytest.raises(SendError) as exc_info:
        await _service(FakeDispatcher(error=error), messages=messages).send("15551234567", "hi")

    assert exc_info.value.category == category
    assert messages.messages == []


@pytest.mark.asyncio
async def test_unknown_error_after_session_drop_is_not_ready() -> None:
    dispatcher = FakeDispatcher(error=RuntimeError("kaboom"))
    dispatcher.drop_on_error = True

    with pytest.raises(NotReadyError):
        await _service(dispatcher).send("15551234567", "hi")


@pytest.mark.asyncio
async def test_send_errors_from_dispatcher_pass_through() -> None:
    dispatcher = FakeDispatcher(error=SendError(SendFailure.TIMEOUT, "15551234567"))

    with pytest.raises(SendError) as exc_info:
        await _service(dispatcher).send("15551234567", "hi")

    assert exc_info.value.category == SendFailure.TIMEOUT


@pytest.mark.asyncio
async def test_persistence_failure_still_reports_success() -> None:
    messages = FakeMessageRepository()
    messages.fail_on_create = RuntimeError("db down")
    session = DummySession()
    realtime = RecordingPublisher()

    result = await _service(
        FakeDispatcher(), messages=messages, session=session, realtime=realtime
    ).send("15551234567", "hello")

    assert result.message_id == "true_15551234567@c.us_1"
    assert not result.persisted
    assert session.rollbacks == 1
    assert realtime.events == []


@pytest.mark.asyncio
async def test_successful_send_publishes_realtime_events() -> None:
    realtime = RecordingPublisher()

    await _service(FakeDispatcher(), realtime=realtime).send("15551234567", "hello")

    assert realtime.names == ["message.created", "contact.updated"]
