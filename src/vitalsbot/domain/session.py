"""Session state for a WhatsApp user, derived on every inbound message."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vitalsbot.google.oauth_registry import OAuthCredential


class SessionState(str, Enum):
    NO_SESSION = "no_session"
    VALID = "valid"
    EXPIRED_WITH_REFRESH = "expired_with_refresh"
    EXPIRED_NO_REFRESH = "expired_no_refresh"
    REVOKED = "revoked"


# Only these states let a message through to the spreadsheet
PROCEED_STATES = frozenset({SessionState.VALID, SessionState.EXPIRED_WITH_REFRESH})


@dataclass(frozen=True)
class SessionRecord:
    """Result of one session resolution. Never cached across requests."""

    state: SessionState
    needs_reauthorization: bool
    credential: OAuthCredential | None = None
    spreadsheet_id: str | None = None

    @property
    def can_proceed(self) -> bool:
        return self.state in PROCEED_STATES

    @classmethod
    def no_session(cls, spreadsheet_id: str | None = None) -> SessionRecord:
        return cls(
            state=SessionState.NO_SESSION,
            needs_reauthorization=True,
            spreadsheet_id=spreadsheet_id,
        )
