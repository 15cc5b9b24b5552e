"""
Session state for a Streamable HTTP transport.

The negotiated session id and protocol version live in an immutable value
that is replaced wholesale on every transition. The generation counter lets
an asynchronous completion check that the state it is about to update is
still the one it started from.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional

from .streamable_http_base import PROTOCOL_VERSION_HEADER, SESSION_ID_HEADER


class SessionPhase(Enum):
    """Session lifecycle phase."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionState:
    """Negotiated session identity for one transport."""

    session_id: Optional[str] = None
    protocol_version: Optional[str] = None
    generation: int = 0
    phase: SessionPhase = SessionPhase.UNINITIALIZED

    @classmethod
    def initial(cls) -> "SessionState":
        return cls()

    @property
    def has_session(self) -> bool:
        return self.session_id is not None

    @property
    def is_empty(self) -> bool:
        return self.session_id is None and self.protocol_version is None

    def begin_initialize(self) -> "SessionState":
        """Start a new generation with no session headers held."""
        return SessionState(
            generation=self.generation + 1,
            phase=SessionPhase.INITIALIZING,
        )

    def ready(self, session_id: Optional[str], protocol_version: str) -> "SessionState":
        """Commit the outcome of an initialize call within this generation."""
        return replace(
            self,
            session_id=session_id,
            protocol_version=protocol_version,
            phase=SessionPhase.READY,
        )

    def closed(self) -> "SessionState":
        """Clear the session and invalidate any in-flight initialize."""
        return SessionState(
            generation=self.generation + 1,
            phase=SessionPhase.CLOSED,
        )

    def headers(self) -> Dict[str, str]:
        """Session headers to attach to non-initialize calls."""
        headers = {}
        if self.session_id:
            headers[SESSION_ID_HEADER] = self.session_id
        if self.protocol_version:
            headers[PROTOCOL_VERSION_HEADER] = self.protocol_version
        return headers


__all__ = ["SessionPhase", "SessionState"]
