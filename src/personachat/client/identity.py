"""Process-wide sign-in state with explicit subscriptions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    token: str
    user_id: str


IdentityListener = Callable[[Optional[Identity]], None]


class IdentityState:
    def __init__(self) -> None:
        self._identity: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []
        self._lock = threading.RLock()

    @property
    def current(self) -> Optional[Identity]:
        return self._identity

    @property
    def token(self) -> Optional[str]:
        ident = self._identity
        return ident.token if ident else None

    @property
    def user_id(self) -> Optional[str]:
        ident = self._identity
        return ident.user_id if ident else None

    def sign_in(self, token: str, user_id: str) -> None:
        self._set(Identity(token=token, user_id=user_id))

    def sign_out(self) -> None:
        self._set(None)

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable removes it again."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _set(self, identity: Optional[Identity]) -> None:
        with self._lock:
            self._identity = identity
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(identity)
            except Exception:
                logger.exception("Identity listener failed")


_identity_state = IdentityState()


def get_identity_state() -> IdentityState:
    return _identity_state
