"""Lifecycle owner for the single messaging session.

The manager drives one transport at a time through the session state
machine. Every bring-up gets a fresh ``generation``; the transport's emitter
is bound to it, so callbacks from a transport that was torn down (or replaced
by a retry) are recognised as stale and dropped. All state mutation happens
under ``_lock``; transport I/O (initialize, logout, destroy) runs outside it
so ``stop()`` is never stuck behind a slow bring-up.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from whatsconnect.core.backoff import (
    AsyncioRetryScheduler,
    BackoffPolicy,
    RetryScheduler,
    RetryToken,
)
from whatsconnect.core.config import Settings
from whatsconnect.domain.enums import (
    SendFailure,
    SessionAction,
    SessionState,
    TransportErrorKind,
)
from whatsconnect.domain.error_signatures import classify_transport_error
from whatsconnect.domain.exceptions import InvalidSessionTransition
from whatsconnect.domain.phone import to_chat_id
from whatsconnect.domain.state_machine import SessionLifecycle
from whatsconnect.infra.realtime.channels import SESSION_CHANNEL
from whatsconnect.infra.realtime.events import RealtimeEvent
from whatsconnect.infra.realtime.publisher import (
    NoopRealtimePublisher,
    RealtimePublisher,
    safe_publish,
)
from whatsconnect.infra.transport.base import (
    MessagingTransport,
    PairingRenderer,
    SentMessage,
    TransportFactory,
)
from whatsconnect.infra.transport.bus import TransportEventBus
from whatsconnect.infra.transport.events import (
    AuthFailed,
    Authenticated,
    Disconnected,
    InboundMessage,
    QRIssued,
    Ready,
    TransportError,
    TransportEvent,
)
from whatsconnect.services.errors import (
    AuthFailedError,
    NotReadyError,
    SendError,
    TransportFatalError,
)

logger = logging.getLogger(__name__)

_QUIET_TEARDOWN_ERRORS = frozenset(
    {TransportErrorKind.RESOURCE_BUSY, TransportErrorKind.PROTOCOL}
)


@dataclass(slots=True)
class Session:
    state: SessionState = SessionState.IDLE
    retry_count: int = 0
    pairing_code: str | None = None
    last_error: str | None = None
    generation: int = 0


@dataclass(frozen=True, slots=True)
class SessionStatus:
    connected: bool
    has_pairing_code: bool
    state: SessionState
    retry_count: int
    last_error: str | None


@dataclass(frozen=True, slots=True)
class PairingArtifact:
    pairing_code: str | None = None
    pairing_image: str | None = None
    status: str | None = None


@dataclass(frozen=True, slots=True)
class SessionPolicy:
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    reconnect_settle_seconds: float = 2.0
    disconnect_settle_seconds: float = 1.5
    send_timeout_seconds: float = 60.0
    lookup_timeout_seconds: float = 5.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionPolicy":
        return cls(
            backoff=BackoffPolicy(
                max_attempts=settings.session_max_retries,
                base_ms=settings.session_backoff_base_ms,
                cap_ms=settings.session_backoff_cap_ms,
            ),
            reconnect_settle_seconds=settings.session_reconnect_settle_seconds,
            disconnect_settle_seconds=settings.session_disconnect_settle_seconds,
            send_timeout_seconds=settings.session_send_timeout_seconds,
            lookup_timeout_seconds=settings.session_lookup_timeout_seconds,
        )


class ConnectionManager:
    def __init__(
        self,
        transport_factory: TransportFactory,
        bus: TransportEventBus | None = None,
        policy: SessionPolicy | None = None,
        scheduler: RetryScheduler | None = None,
        renderer: PairingRenderer | None = None,
        realtime: RealtimePublisher | None = None,
    ) -> None:
        self.session = Session()
        self.bus = bus or TransportEventBus()
        self.policy = policy or SessionPolicy()
        self._transport_factory = transport_factory
        self._scheduler = scheduler or AsyncioRetryScheduler()
        self._renderer = renderer
        self._realtime = realtime or NoopRealtimePublisher()
        self._transport: MessagingTransport | None = None
        self._pending: RetryToken | None = None
        self._lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def has_pending_restart(self) -> bool:
        return self._pending is not None and not self._pending.cancelled

    def get_status(self) -> SessionStatus:
        session = self.session
        return SessionStatus(
            connected=SessionLifecycle.is_connected(session.state),
            has_pairing_code=session.pairing_code is not None,
            state=session.state,
            retry_count=session.retry_count,
            last_error=session.last_error,
        )

    async def get_pairing_artifact(self, want_image: bool = False) -> PairingArtifact:
        code = self.session.pairing_code
        if code:
            if want_image and self._renderer is not None:
                try:
                    image = await asyncio.to_thread(self._renderer.render, code)
                except Exception:
                    logger.exception("Error generating pairing image, returning raw code")
                else:
                    return PairingArtifact(pairing_image=image)
            return PairingArtifact(pairing_code=code)
        if SessionLifecycle.is_connected(self.session.state):
            return PairingArtifact(status="connected")
        return PairingArtifact(status="initializing")

    async def start(self) -> None:
        async with self._lock:
            if not SessionLifecycle.can_start(self.session.state):
                logger.debug(
                    "Ignoring start request while session is %s", self.session.state.value
                )
                return
            self._cancel_pending()
            self.session.retry_count = 0
            self.session.last_error = None
            stale = self._detach()
            brought_up = self._bring_up(SessionAction.START)

        if stale is not None:
            await self._teardown(stale, logout=False)
        await self._publish_state()
        if brought_up is not None:
            await self._initialize(*brought_up)

    async def stop(self, logout: bool = True) -> None:
        async with self._lock:
            self._cancel_pending()
            transport = self._detach()
            self.session.state = SessionLifecycle.transition(
                self.session.state, SessionAction.STOP
            )
            self.session.retry_count = 0
            self.session.pairing_code = None
            self.session.last_error = None

        if transport is not None:
            await self._teardown(transport, logout=logout)
        await self._publish_state()

    async def reconnect(self) -> None:
        """Tear down without logging out, then start again after a settle delay."""
        await self._restart_after(self.policy.reconnect_settle_seconds, logout=False)

    async def disconnect(self) -> None:
        """Log out and tear down, then start again so a fresh pairing code is issued."""
        await self._restart_after(self.policy.disconnect_settle_seconds, logout=True)

    async def send(self, phone: str, body: str) -> SentMessage:
        transport = self._transport
        if transport is None or not SessionLifecycle.is_connected(self.session.state):
            raise NotReadyError()

        async with self._send_lock:
            try:
                return await asyncio.wait_for(
                    transport.send(to_chat_id(phone), body),
                    timeout=self.policy.send_timeout_seconds,
                )
            except TimeoutError as exc:
                raise SendError(
                    SendFailure.TIMEOUT,
                    phone,
                    f"no response within {self.policy.send_timeout_seconds:g}s",
                ) from exc

    async def lookup_display_name(self, sender_id: str) -> str | None:
        transport = self._transport
        if transport is None:
            return None
        try:
            info = await asyncio.wait_for(
                transport.get_contact_info(sender_id),
                timeout=self.policy.lookup_timeout_seconds,
            )
        except Exception:
            logger.info("Could not fetch contact name for %s", sender_id, exc_info=True)
            return None
        if info is None:
            return None
        return info.display_name

    async def _restart_after(self, delay_seconds: float, logout: bool) -> None:
        await self.stop(logout=logout)

        async def restart() -> None:
            await self._run_scheduled_start(token)

        async with self._lock:
            self._cancel_pending()
            token = self._scheduler.schedule(delay_seconds, restart)
            self._pending = token
        logger.info("Messaging session restart scheduled in %.1fs", delay_seconds)

    async def _run_scheduled_start(self, token: RetryToken) -> None:
        async with self._lock:
            if token.cancelled or token is not self._pending:
                return
            self._pending = None
        await self.start()

    async def _run_retry(self, token: RetryToken, generation: int) -> None:
        async with self._lock:
            if (
                token.cancelled
                or token is not self._pending
                or generation != self.session.generation
            ):
                logger.debug("Discarding stale retry callback")
                return
            self._pending = None
            stale = self._detach()
            brought_up = self._bring_up(SessionAction.RETRY)

        if stale is not None:
            await self._teardown(stale, logout=False)
        await self._publish_state()
        if brought_up is not None:
            await self._initialize(*brought_up)

    def _bring_up(self, action: SessionAction) -> tuple[MessagingTransport, int] | None:
        self.session.state = SessionLifecycle.transition(self.session.state, action)
        self.session.pairing_code = None
        self.session.generation += 1
        generation = self.session.generation
        try:
            self._transport = self._transport_factory(
                partial(self._on_transport_event, generation)
            )
        except Exception as exc:
            logger.exception("Messaging transport could not be constructed")
            self.session.last_error = str(exc) or type(exc).__name__
            self._fail(SessionAction.FATAL_ERROR)
            return None
        return self._transport, generation

    async def _initialize(self, transport: MessagingTransport, generation: int) -> None:
        logger.info(
            "Initializing messaging transport (generation %d, retry %d)",
            generation,
            self.session.retry_count,
        )
        try:
            await transport.initialize()
        except Exception as exc:
            await self._handle_failure(generation, exc, during_initialization=True)

    async def _on_transport_event(self, generation: int, event: TransportEvent) -> None:
        if generation != self.session.generation:
            logger.debug("Dropping %s from a retired transport", type(event).__name__)
            return

        if isinstance(event, InboundMessage):
            pass
        elif isinstance(event, TransportError):
            await self._handle_failure(
                generation,
                event.error,
                during_initialization=self.session.state == SessionState.INITIALIZING,
            )
        elif isinstance(event, AuthFailed):
            await self._handle_failure(
                generation,
                AuthFailedError(event.reason),
                during_initialization=False,
                kind=TransportErrorKind.AUTH,
            )
        elif isinstance(event, Disconnected):
            await self._handle_disconnect(generation, event.reason)
        else:
            await self._handle_progress(generation, event)

        await self.bus.publish(event)

    async def _handle_progress(
        self, generation: int, event: QRIssued | Authenticated | Ready
    ) -> None:
        async with self._lock:
            if generation != self.session.generation:
                return
            if isinstance(event, QRIssued):
                if not self._apply(SessionAction.QR_ISSUED):
                    return
                self.session.pairing_code = event.code
                logger.info("Pairing code received - available in Settings")
            elif isinstance(event, Authenticated):
                if not self._apply(SessionAction.AUTHENTICATED):
                    return
                self.session.pairing_code = None
                logger.info("Messaging session authenticated")
            else:
                if not self._apply(SessionAction.READY):
                    return
                self.session.pairing_code = None
                self.session.retry_count = 0
                self.session.last_error = None
                logger.info("Messaging session is ready")
        await self._publish_state()

    async def _handle_disconnect(self, generation: int, reason: str) -> None:
        stale: MessagingTransport | None = None
        async with self._lock:
            if generation != self.session.generation:
                return
            logger.warning("Messaging session disconnected: %s", reason)
            if not self._apply(SessionAction.DISCONNECTED):
                return
            self.session.pairing_code = None
            self.session.last_error = f"Disconnected: {reason}"
            if not self._schedule_retry():
                stale = self._fail(SessionAction.FATAL_ERROR)

        if stale is not None:
            await self._teardown(stale, logout=False)
        await self._publish_state()

    async def _handle_failure(
        self,
        generation: int,
        error: BaseException,
        during_initialization: bool,
        kind: TransportErrorKind | None = None,
    ) -> None:
        kind = kind or classify_transport_error(error)
        stale: MessagingTransport | None = None
        async with self._lock:
            if generation != self.session.generation:
                logger.debug("Ignoring %s error from a retired transport", kind.value)
                return
            if not during_initialization and kind == TransportErrorKind.RESOURCE_BUSY:
                logger.warning("Messaging transport file-lock warning (ignored): %s", error)
                return
            if not during_initialization and kind == TransportErrorKind.OTHER:
                logger.error("Messaging transport error: %s", error, exc_info=error)
                return

            self.session.last_error = str(error) or type(error).__name__
            if kind == TransportErrorKind.AUTH:
                logger.error("Messaging authentication failure: %s", error)
                stale = self._fail(SessionAction.AUTH_FAILED)
            else:
                logger.warning(
                    "Messaging transport %s error%s: %s",
                    kind.value,
                    " during initialization" if during_initialization else "",
                    error,
                )
                if not self._schedule_retry():
                    stale = self._fail(SessionAction.FATAL_ERROR)

        if stale is not None:
            await self._teardown(stale, logout=False)
        await self._publish_state()

    def _schedule_retry(self) -> bool:
        backoff = self.policy.backoff
        if backoff.exhausted(self.session.retry_count):
            return False

        if self.session.state != SessionState.DISCONNECTED:
            self._apply(SessionAction.DISCONNECTED)
        self.session.retry_count += 1
        attempt = self.session.retry_count
        generation = self.session.generation

        async def retry() -> None:
            await self._run_retry(token, generation)

        self._cancel_pending()
        token = self._scheduler.schedule(backoff.delay_seconds(attempt), retry)
        self._pending = token
        logger.warning(
            "Retrying messaging session initialization (attempt %d/%d) in %dms",
            attempt,
            backoff.max_attempts,
            backoff.delay_ms(attempt),
        )
        return True

    def _fail(self, action: SessionAction) -> MessagingTransport | None:
        self._cancel_pending()
        if action == SessionAction.FATAL_ERROR:
            fatal = TransportFatalError(self.session.retry_count, self.session.last_error)
            self.session.last_error = str(fatal)
            logger.error("%s; an explicit reconnect is required", fatal)
        self.session.state = SessionLifecycle.transition(self.session.state, action)
        self.session.pairing_code = None
        return self._detach()

    def _apply(self, action: SessionAction) -> bool:
        try:
            self.session.state = SessionLifecycle.transition(self.session.state, action)
        except InvalidSessionTransition as exc:
            logger.warning("Ignoring transport notification: %s", exc)
            return False
        return True

    def _detach(self) -> MessagingTransport | None:
        transport = self._transport
        self._transport = None
        self.session.generation += 1
        return transport

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    async def _teardown(self, transport: MessagingTransport, logout: bool) -> None:
        if logout:
            try:
                await transport.logout()
            except Exception as exc:
                logger.warning("Logout warning: %s", exc)
        try:
            await transport.destroy()
        except Exception as exc:
            if classify_transport_error(exc) in _QUIET_TEARDOWN_ERRORS:
                logger.debug("Ignoring teardown error: %s", exc)
            else:
                logger.error("Error destroying messaging transport: %s", exc)

    async def _publish_state(self) -> None:
        await safe_publish(
            self._realtime,
            [SESSION_CHANNEL],
            RealtimeEvent.SESSION_STATE_CHANGED,
            self._status_payload(),
        )

    def _status_payload(self) -> dict[str, Any]:
        status = self.get_status()
        return {
            "connected": status.connected,
            "has_pairing_code": status.has_pairing_code,
            "state": status.state.value,
            "retry_count": status.retry_count,
            "last_error": status.last_error,
        }
