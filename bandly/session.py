"""
Session context: the bearer token shared by every command.

Components receive a SessionContext explicitly instead of reading the store
themselves. Listeners are notified on every change (login, logout, a 401
that invalidates the token).
"""

from typing import Callable, List, Optional

from bandly.exceptions import StorageError
from bandly.logging_config import get_logger
from bandly.storage import LocalStore, TOKEN_KEY

logger = get_logger(__name__)


TokenListener = Callable[[Optional[str]], None]


class SessionContext:
    """get/set/clear access to the stored bearer token"""

    def __init__(self, store: LocalStore):
        self.store = store
        self._listeners: List[TokenListener] = []

    def get(self) -> Optional[str]:
        """Return the stored token, or None when logged out or unreadable"""
        try:
            return self.store.get_str(TOKEN_KEY) or None
        except StorageError as e:
            logger.warning(f"Could not read token: {e}")
            return None

    def set(self, token: str) -> None:
        self.store.put_str(TOKEN_KEY, token)
        self._notify(token)

    def clear(self) -> None:
        try:
            self.store.delete(TOKEN_KEY)
        except StorageError as e:
            logger.warning(f"Could not clear token: {e}")
        self._notify(None)

    @property
    def is_authenticated(self) -> bool:
        return self.get() is not None

    def auth_headers(self) -> dict:
        token = self.get()
        return {"Authorization": f"Bearer {token}"} if token else {}

    def subscribe(self, listener: TokenListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, token: Optional[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(token)
            except Exception as e:
                logger.warning(f"Session listener failed: {e}")
