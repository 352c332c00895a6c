from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Hashable


class SessionError(Exception):
    """Base class for session table misuse."""


class DuplicateSessionError(SessionError):
    pass


class UnknownSessionError(SessionError, KeyError):
    pass


class AlreadyRegisteredError(SessionError):
    pass


@dataclass
class Session:
    """Server-side state for one connected client."""

    handle: Hashable
    peer: str = "-"
    display_name: str | None = None
    connected_at: float = field(default_factory=time.monotonic)

    @property
    def registered(self) -> bool:
        return self.display_name is not None

    def age_s(self, now: float | None = None) -> float:
        return max(0.0, (time.monotonic() if now is None else now) - self.connected_at)


class SessionTable:
    """
    Authoritative mapping of live stream handles to their sessions.

    Owned by a single control loop; it performs no locking of its own.
    Iteration order is insertion order, which is also the delivery order
    used for broadcasts.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("chatrelay.session")
        self._sessions: dict[Hashable, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, handle: object) -> bool:
        return handle in self._sessions

    def insert(self, handle: Hashable, peer: str = "-") -> Session:
        if handle in self._sessions:
            raise DuplicateSessionError(f"session already present for {peer}")
        sess = Session(handle=handle, peer=peer)
        self._sessions[handle] = sess
        self.log.debug("Session created peer=%s total=%s", peer, len(self._sessions))
        return sess

    def get(self, handle: Hashable) -> Session | None:
        return self._sessions.get(handle)

    def set_name(self, handle: Hashable, name: str) -> Session:
        """Register a session under ``name``.

        Only the first registration is accepted; a registered session keeps
        its name for its whole lifetime.
        """
        sess = self._sessions.get(handle)
        if sess is None:
            raise UnknownSessionError(handle)
        if sess.display_name is not None:
            raise AlreadyRegisteredError(
                f"session {sess.peer} already registered as {sess.display_name!r}"
            )
        sess.display_name = name
        return sess

    def remove(self, handle: Hashable) -> Session:
        try:
            sess = self._sessions.pop(handle)
        except KeyError:
            raise UnknownSessionError(handle) from None
        self.log.debug(
            "Session removed peer=%s nick=%r total=%s",
            sess.peer,
            sess.display_name,
            len(self._sessions),
        )
        return sess

    def discard(self, handle: Hashable) -> Session | None:
        return self._sessions.pop(handle, None)

    def snapshot(self) -> list[tuple[Hashable, Session]]:
        """Point-in-time copy of the table, safe to iterate while mutating."""
        return list(self._sessions.items())

    def names(self) -> list[str]:
        return [s.display_name for s in self._sessions.values() if s.display_name is not None]

    def clear_all(self) -> list[Session]:
        """Empty the table and return the removed sessions for teardown."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        return sessions

    def get_stats(self) -> dict[str, Any]:
        total = len(self._sessions)
        registered = sum(1 for s in self._sessions.values() if s.registered)
        return {
            "total": total,
            "registered": registered,
            "anonymous": total - registered,
        }
