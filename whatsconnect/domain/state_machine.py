from whatsconnect.domain.enums import QueryStatus, SessionAction, SessionState
from whatsconnect.domain.exceptions import InvalidSessionTransition

_STARTABLE_STATES = frozenset(
    {SessionState.IDLE, SessionState.FAILED, SessionState.DISCONNECTED}
)
_REOPENABLE_STATUSES = frozenset({QueryStatus.RESOLVED, QueryStatus.CLOSED})


class SessionLifecycle:
    """State machine for the messaging session: idle -> initializing -> ready."""

    _allowed_transitions: dict[tuple[SessionState, SessionAction], SessionState] = {
        (SessionState.IDLE, SessionAction.START): SessionState.INITIALIZING,
        (SessionState.FAILED, SessionAction.START): SessionState.INITIALIZING,
        (SessionState.DISCONNECTED, SessionAction.START): SessionState.INITIALIZING,
        (SessionState.INITIALIZING, SessionAction.QR_ISSUED): SessionState.AWAITING_SCAN,
        (SessionState.AWAITING_SCAN, SessionAction.AUTHENTICATED): SessionState.INITIALIZING,
        (SessionState.INITIALIZING, SessionAction.AUTHENTICATED): SessionState.INITIALIZING,
        (SessionState.INITIALIZING, SessionAction.READY): SessionState.READY,
        (SessionState.AWAITING_SCAN, SessionAction.READY): SessionState.READY,
        (SessionState.READY, SessionAction.DISCONNECTED): SessionState.DISCONNECTED,
        (SessionState.INITIALIZING, SessionAction.DISCONNECTED): SessionState.DISCONNECTED,
        (SessionState.AWAITING_SCAN, SessionAction.DISCONNECTED): SessionState.DISCONNECTED,
        (SessionState.DISCONNECTED, SessionAction.RETRY): SessionState.INITIALIZING,
    }

    @classmethod
    def transition(cls, current: SessionState, action: SessionAction) -> SessionState:
        if action == SessionAction.STOP:
            return SessionState.IDLE
        if action in (SessionAction.AUTH_FAILED, SessionAction.FATAL_ERROR):
            return SessionState.FAILED

        # Idempotent semantics for repeated transport notifications.
        if current == SessionState.AWAITING_SCAN and action == SessionAction.QR_ISSUED:
            return SessionState.AWAITING_SCAN
        if current == SessionState.READY and action == SessionAction.READY:
            return SessionState.READY

        next_state = cls._allowed_transitions.get((current, action))
        if not next_state:
            raise InvalidSessionTransition(current=current, action=action)
        return next_state

    @staticmethod
    def can_start(state: SessionState) -> bool:
        return state in _STARTABLE_STATES

    @staticmethod
    def is_connected(state: SessionState) -> bool:
        return state == SessionState.READY


class ContactLifecycle:
    """Query status rules applied by the message pipelines."""

    @staticmethod
    def on_inbound(current: QueryStatus) -> QueryStatus:
        # A customer writing again reopens a finished ticket.
        if current in _REOPENABLE_STATUSES:
            return QueryStatus.NEW
        return current

    @staticmethod
    def on_agent_reply(current: QueryStatus) -> QueryStatus:
        if current == QueryStatus.NEW:
            return QueryStatus.IN_PROGRESS
        return current

    @staticmethod
    def reopenable_statuses() -> frozenset[QueryStatus]:
        return _REOPENABLE_STATUSES
