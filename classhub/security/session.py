# classhub/security/session.py
import logging
from typing import Awaitable, Callable, List, Optional

from classhub.models.session import SessionState
from classhub.security.jwt_utils import decode_token, session_from_claims

LOGGER = logging.getLogger(__name__)

SessionListener = Callable[[Optional[SessionState]], Awaitable[None]]


class SessionObserver:
    """
    Current sign-in state of one client session.

    Listeners are awaited in registration order every time the state
    changes; None means nobody is signed in.
    """

    def __init__(self):
        self.state: Optional[SessionState] = None
        self._listeners: List[SessionListener] = []

    @property
    def authenticated(self) -> bool:
        return self.state is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def set_state(self, state: Optional[SessionState]):
        if state == self.state:
            return
        self.state = state
        LOGGER.info("Session changed: %s", state.user_id if state else "signed out")
        for listener in list(self._listeners):
            await listener(state)

    async def sign_in(self, token: str):
        """Raises HTTPException(401) for an invalid token."""
        await self.set_state(session_from_claims(decode_token(token)))

    async def sign_out(self):
        await self.set_state(None)
