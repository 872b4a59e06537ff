"""Where active refinement sessions live between calls."""

from abc import ABC, abstractmethod

from collab_refine.models import RefinementSession


class SessionStore(ABC):
    """get/put/delete by session id. Swap in another backend without touching the engine."""

    @abstractmethod
    def get(self, session_id: str) -> RefinementSession | None:
        ...

    @abstractmethod
    def put(self, session: RefinementSession) -> None:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove the session; unknown ids are ignored."""
        ...

    @abstractmethod
    def ids(self) -> list[str]:
        ...

    def __contains__(self, session_id: object) -> bool:
        return isinstance(session_id, str) and self.get(session_id) is not None

    def __len__(self) -> int:
        return len(self.ids())


class InMemorySessionStore(SessionStore):
    """Process-local dict. Sessions do not survive a restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, RefinementSession] = {}

    def get(self, session_id: str) -> RefinementSession | None:
        return self._sessions.get(session_id)

    def put(self, session: RefinementSession) -> None:
        self._sessions[session.id] = session

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def ids(self) -> list[str]:
        return list(self._sessions)
