from whatsconnect.domain.enums import SessionAction, SessionState


class InvalidSessionTransition(ValueError):
    def __init__(self, current: SessionState, action: SessionAction) -> None:
        super().__init__(
            f"Cannot apply action '{action.value}' from state '{current.value}'."
        )
        self.current = current
        self.action = action
