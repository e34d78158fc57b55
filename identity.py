"""
identity.py — Profile sign-in for the studio.
The workout engine never needs a user; the app only checks one before
touching saved workouts.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger


@dataclass(frozen=True)
class User:
    id: str
    name: str


Listener = Callable[[Optional[User]], None]


class ProfileIdentity:
    """Holds the signed-in profile and tells subscribers when it changes."""

    def __init__(self) -> None:
        self._user: Optional[User] = None
        self._listeners: list[Listener] = []

    def current_user(self) -> Optional[User]:
        return self._user

    def sign_in(self, name: str) -> User:
        user = User(id=name.strip().lower().replace(" ", "-"), name=name.strip())
        if user != self._user:
            self._user = user
            logger.info(f"Signed in as {user.name}")
            self._emit()
        return user

    def sign_out(self) -> None:
        if self._user is None:
            return
        logger.info(f"Signed out {self._user.name}")
        self._user = None
        self._emit()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for auth changes; call the result to unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._user)
