"""Session lifecycle state machine.

``transition`` is the pure table; ``apply`` runs it against a Session and
updates the fields each transition owns (pairing code, connected_at, error,
...). Events that are not valid for the current status return ``None`` and
leave the session untouched.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from chatgate.models.base import utcnow
from chatgate.models.session import Session, SessionStatus

S = SessionStatus

# Disconnect reason reported when the account was logged out from the phone.
LOGOUT_REASON = "LOGOUT"


class LifecycleEvent(StrEnum):
    PAIRING_CODE = "pairing_code"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"


_TRANSITIONS: dict[tuple[SessionStatus, LifecycleEvent], SessionStatus] = {
    (S.INITIALIZING, LifecycleEvent.PAIRING_CODE): S.WAITING_PAIRING,
    (S.WAITING_PAIRING, LifecycleEvent.PAIRING_CODE): S.WAITING_PAIRING,
    (S.INITIALIZING, LifecycleEvent.AUTHENTICATED): S.AUTHENTICATED,
    (S.WAITING_PAIRING, LifecycleEvent.AUTHENTICATED): S.AUTHENTICATED,
    (S.AUTHENTICATED, LifecycleEvent.READY): S.READY,
    (S.INITIALIZING, LifecycleEvent.DISCONNECTED): S.DISCONNECTED,
    (S.WAITING_PAIRING, LifecycleEvent.DISCONNECTED): S.DISCONNECTED,
    (S.AUTHENTICATED, LifecycleEvent.DISCONNECTED): S.DISCONNECTED,
    (S.READY, LifecycleEvent.DISCONNECTED): S.DISCONNECTED,
}

TERMINAL = frozenset({S.AUTH_FAILURE, S.LOGGED_OUT})


def is_logout(reason: str | None) -> bool:
    return (reason or "").upper() == LOGOUT_REASON


def transition(
    current: SessionStatus,
    event: LifecycleEvent,
    reason: str | None = None,
) -> SessionStatus | None:
    """Return the next status, or None when ``event`` is not valid now."""
    if event is LifecycleEvent.AUTH_FAILURE:
        return S.AUTH_FAILURE
    if event is LifecycleEvent.DISCONNECTED:
        if current is S.DISCONNECTED and is_logout(reason):
            # Late logout reason for an already disconnected session.
            return S.LOGGED_OUT
        nxt = _TRANSITIONS.get((current, event))
        if nxt is S.DISCONNECTED and is_logout(reason):
            return S.LOGGED_OUT
        return nxt
    return _TRANSITIONS.get((current, event))


def apply(
    session: Session,
    event: LifecycleEvent,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> SessionStatus | None:
    payload = payload or {}
    reason = payload.get("reason")
    nxt = transition(session.status, event, reason)
    if nxt is None:
        return None

    if event is LifecycleEvent.PAIRING_CODE:
        session.pairing_code = payload.get("code")
    elif event is LifecycleEvent.AUTHENTICATED:
        session.pairing_code = None
    elif event is LifecycleEvent.READY:
        session.pairing_code = None
        session.info = payload.get("info") or session.info
        if session.connected_at is None:
            session.connected_at = now or utcnow()
    elif event is LifecycleEvent.AUTH_FAILURE:
        session.pairing_code = None
        session.error = payload.get("message") or "Authentication failure"
    elif event is LifecycleEvent.DISCONNECTED:
        session.pairing_code = None
        session.disconnect_reason = reason

    session.set_status(nxt)
    return nxt
