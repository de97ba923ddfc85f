"""Session registry — owns every tenant's Session and PairingWindow.

Exclusivity comes from single-flight construction rather than locks: the
first ``get_or_create`` for a tenant starts one construction task and every
concurrent caller awaits that same task. The session map is only mutated
synchronously (insert / pop), never across an ``await``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable
from typing import Any

from chatgate.core.errors import (
    AuthFailureError,
    GatewayError,
    InternalError,
    NotFoundError,
    NotReadyError,
    OperationTimeoutError,
    PairingTimeoutError,
)
from chatgate.models.base import utcnow
from chatgate.models.session import Session, SessionStatus
from chatgate.services import lifecycle
from chatgate.services.client import ClientEvent, ClientFactory
from chatgate.services.credentials import CredentialProbe
from chatgate.services.events import EventBus, EventName
from chatgate.services.lifecycle import LifecycleEvent
from chatgate.services.pairing import PairingGate, PairingResult, PairingWindow

logger = logging.getLogger(__name__)

# Sessions in these states are rebuilt from scratch on the next get_or_create.
RECYCLABLE = frozenset({SessionStatus.DISCONNECTED, SessionStatus.LOGGED_OUT})

MIN_SETTLE_SECONDS = 1.0

_LIFECYCLE_EVENTS = frozenset(e.value for e in LifecycleEvent)


class SessionRegistry:
    def __init__(
        self,
        client_factory: ClientFactory,
        probe: CredentialProbe,
        bus: EventBus | None = None,
        *,
        pairing_window_seconds: float = 60.0,
        pairing_code_timeout_seconds: float = 10.0,
        client_init_timeout_seconds: float = 60.0,
        replace_settle_seconds: float = MIN_SETTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.probe = probe
        self.bus = bus or EventBus()
        self.pairing = PairingGate(
            pairing_window_seconds, on_expire=self._on_window_expired, clock=clock
        )
        self._client_factory = client_factory
        self._code_timeout = pairing_code_timeout_seconds
        self._init_timeout = client_init_timeout_seconds
        self._settle_seconds = max(MIN_SETTLE_SECONDS, replace_settle_seconds)
        self._sessions: dict[str, Session] = {}
        self._pending: dict[str, asyncio.Task[Session]] = {}

    # ── Lookups (never suspend) ──────────────────────────────

    def get(self, tenant_id: str) -> Session | None:
        return self._sessions.get(tenant_id)

    def tenant_ids(self) -> list[str]:
        return list(self._sessions)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def is_pending(self, tenant_id: str) -> bool:
        return tenant_id in self._pending

    def pending_count(self) -> int:
        return len(self._pending)

    def known_tenants(self) -> list[str]:
        """Tenants in memory or with credentials on disk."""
        return sorted(set(self._sessions) | set(self.probe.list_tenants()))

    def counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in SessionStatus}
        for session in self._sessions.values():
            counts[session.status.value] += 1
        return counts

    # ── Creation ─────────────────────────────────────────────

    async def get_or_create(self, tenant_id: str) -> Session:
        """Return the tenant's session, restoring or constructing it if needed.

        Concurrent calls share one construction; no second client is built
        for a tenant while one is being brought up.
        """
        pending = self._pending.get(tenant_id)
        if pending is not None:
            return await asyncio.shield(pending)

        session = self._sessions.get(tenant_id)
        if session is not None and session.status not in RECYCLABLE:
            return session

        task = asyncio.ensure_future(self._construct(tenant_id, stale=session))
        self._pending[tenant_id] = task
        task.add_done_callback(functools.partial(self._settle, tenant_id))
        return await asyncio.shield(task)

    async def lookup(self, tenant_id: str) -> Session:
        """In-memory session, else one restored from disk, else NotFound."""
        session = self._sessions.get(tenant_id)
        if session is None and (self.is_pending(tenant_id) or self.probe.exists(tenant_id)):
            session = await self.get_or_create(tenant_id)
        if session is None:
            raise NotFoundError(f"Session {tenant_id!r} not found")
        return session

    def _settle(self, tenant_id: str, task: asyncio.Task[Session]) -> None:
        if self._pending.get(tenant_id) is task:
            del self._pending[tenant_id]
        if not task.cancelled():
            # Mark the exception retrieved; callers saw it through shield().
            task.exception()

    async def _construct(self, tenant_id: str, stale: Session | None) -> Session:
        if stale is not None:
            logger.info("Recycling %s session for tenant %s", stale.status, tenant_id)
            await self.destroy(tenant_id)
            if stale.status is SessionStatus.LOGGED_OUT:
                await self.probe.discard(tenant_id)

        restored = self.probe.exists(tenant_id)
        client = self._client_factory(tenant_id, self.probe.path_for(tenant_id))
        session = Session(tenant_id=tenant_id, client=client, restored=restored)
        for event in ClientEvent:
            client.on(event, functools.partial(self._on_client_event, session, event))
        self._sessions[tenant_id] = session
        logger.info(
            "%s session for tenant %s",
            "Restoring" if restored else "Creating",
            tenant_id,
        )

        try:
            await asyncio.wait_for(client.initialize(), timeout=self._init_timeout)
        except TimeoutError as exc:
            await self._discard_failed(session)
            raise OperationTimeoutError(
                f"Client initialization timed out for tenant {tenant_id}"
            ) from exc
        except asyncio.CancelledError:
            await self._discard_failed(session)
            raise
        except GatewayError:
            await self._discard_failed(session)
            raise
        except Exception as exc:
            logger.exception("Failed to initialize session for tenant %s", tenant_id)
            await self._discard_failed(session)
            raise InternalError(f"Client initialization failed: {exc}") from exc

        if self._sessions.get(tenant_id) is not session:
            raise NotFoundError(f"Session {tenant_id!r} was destroyed during initialization")
        return session

    async def _discard_failed(self, session: Session) -> None:
        session.retire()
        if self._sessions.get(session.tenant_id) is session:
            del self._sessions[session.tenant_id]
            self.pairing.drop(session.tenant_id)
        try:
            await session.client.destroy()
        except Exception:
            logger.exception("Error destroying failed client for tenant %s", session.tenant_id)

    # ── Destruction / replacement ────────────────────────────

    async def destroy(self, tenant_id: str) -> None:
        """Tear down a tenant's session. Absent tenants are a no-op."""
        session = self._sessions.pop(tenant_id, None)
        self.pairing.drop(tenant_id)
        if session is None:
            return

        session.retire()
        session.fail_code_waiters(NotFoundError(f"Session {tenant_id!r} was destroyed"))
        logger.info("Destroying session for tenant %s", tenant_id)
        try:
            await session.client.destroy()
        except Exception:
            logger.exception("Error destroying client for tenant %s", tenant_id)
        self.bus.publish(EventName.SESSION_DESTROYED, tenant_id, {"status": session.status})

    async def replace(self, tenant_id: str, preserve_state: bool = False) -> Session:
        """Destroy then recreate, with a settle delay so the old client can
        release the tenant's credential directory first."""
        existing = self._sessions.get(tenant_id)
        saved: dict[str, Any] | None = None
        if existing is not None and preserve_state and existing.status is SessionStatus.READY:
            saved = {"info": existing.info, "createdAt": existing.created_at.isoformat()}

        if existing is not None:
            await self.destroy(tenant_id)
        await asyncio.sleep(self._settle_seconds)

        session = await self.get_or_create(tenant_id)
        session.replaced_at = utcnow()
        if saved is not None:
            session.previous_state = saved
        return session

    async def cancel_pending(self) -> None:
        """Abort in-flight constructions and wait for their cleanup."""
        tasks = list(self._pending.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ── Readiness / pairing ──────────────────────────────────

    async def wait_for_ready(self, tenant_id: str, timeout: float) -> Session:
        session = self._sessions.get(tenant_id)
        if session is None:
            raise NotFoundError(f"Session {tenant_id!r} not found")
        if session.status is SessionStatus.READY:
            return session
        try:
            await asyncio.wait_for(session.ready.wait(), timeout=timeout)
        except TimeoutError as exc:
            raise OperationTimeoutError(
                f"Session {tenant_id!r} not ready after {timeout:g}s (status: {session.status})"
            ) from exc
        if session.retired:
            raise NotFoundError(f"Session {tenant_id!r} was destroyed while waiting")
        return session

    async def request_pairing_code(self, tenant_id: str) -> PairingResult:
        session = await self.lookup(tenant_id)

        if session.status in RECYCLABLE:
            # A client that gave up on pairing cannot produce a fresh code.
            logger.info("Restarting %s session for tenant %s", session.status, tenant_id)
            session = await self.get_or_create(tenant_id)

        if session.status is SessionStatus.AUTH_FAILURE:
            raise AuthFailureError(
                f"Session {tenant_id!r} failed authentication ({session.error}); replace it"
            )
        if session.status in (SessionStatus.READY, SessionStatus.AUTHENTICATED):
            return self._already_paired(session)

        window = self.pairing.open(tenant_id)
        code = session.pairing_code
        if code is None:
            try:
                code = await asyncio.wait_for(
                    session.next_pairing_code(), timeout=self._code_timeout
                )
            except TimeoutError as exc:
                # The window keeps running; the caller retries after it expires.
                raise PairingTimeoutError(
                    f"No pairing code from the chat client within {self._code_timeout:g}s"
                ) from exc
            if code is None:
                return self._already_paired(session)
        self.pairing.record_code(tenant_id, code)

        return PairingResult(
            status="qr",
            tenant_id=tenant_id,
            code=code,
            expires_in_seconds=self.pairing.seconds_remaining(tenant_id),
            expires_at=window.expires_at,
            message="Scan this code from the chat app's linked devices screen",
        )

    @staticmethod
    def _already_paired(session: Session) -> PairingResult:
        return PairingResult(
            status=session.status.value,
            tenant_id=session.tenant_id,
            connected_at=session.connected_at,
            message="Session already authenticated",
        )

    # ── Client notifications ─────────────────────────────────

    def _on_client_event(
        self, session: Session, event: ClientEvent, payload: dict[str, Any]
    ) -> None:
        tenant_id = session.tenant_id
        if self._sessions.get(tenant_id) is not session:
            logger.debug("Ignoring %s from a retired client for tenant %s", event, tenant_id)
            return

        if event.value in _LIFECYCLE_EVENTS:
            self._apply_lifecycle(session, LifecycleEvent(event.value), payload)
        elif event is ClientEvent.MESSAGE:
            self.bus.publish(EventName.MESSAGE, tenant_id, dict(payload))
        elif event is ClientEvent.MESSAGE_ACK:
            self.bus.publish(EventName.MESSAGE_ACK, tenant_id, dict(payload))

    def _apply_lifecycle(
        self, session: Session, event: LifecycleEvent, payload: dict[str, Any]
    ) -> None:
        tenant_id = session.tenant_id
        previous = session.status
        status = lifecycle.apply(session, event, payload)
        if status is None:
            logger.warning(
                "Ignoring %s for tenant %s in status %s", event, tenant_id, previous
            )
            return
        if status is not previous:
            logger.info("Tenant %s: %s -> %s", tenant_id, previous, status)

        if event is LifecycleEvent.PAIRING_CODE:
            self.pairing.record_code(tenant_id, session.pairing_code)
            session.resolve_code_waiters(session.pairing_code)
            self.bus.publish(EventName.PAIRING_CODE, tenant_id, {"code": session.pairing_code})
        elif event is LifecycleEvent.AUTHENTICATED:
            self.pairing.close(tenant_id)
            session.resolve_code_waiters(None)
            self.bus.publish(EventName.AUTHENTICATED, tenant_id)
        elif event is LifecycleEvent.READY:
            self.bus.publish(
                EventName.CONNECTED,
                tenant_id,
                {"info": session.info, "connectedAt": session.connected_at},
            )
        elif event is LifecycleEvent.AUTH_FAILURE:
            self.pairing.close(tenant_id)
            session.fail_code_waiters(AuthFailureError(session.error))
            self.bus.publish(EventName.AUTH_FAILURE, tenant_id, {"message": session.error})
        elif event is LifecycleEvent.DISCONNECTED:
            self.pairing.drop(tenant_id)
            session.fail_code_waiters(
                NotReadyError(f"Session {tenant_id!r} disconnected before pairing")
            )
            self.bus.publish(
                EventName.DISCONNECTED,
                tenant_id,
                {"reason": session.disconnect_reason, "status": status},
            )

    def _on_window_expired(self, window: PairingWindow) -> None:
        session = self._sessions.get(window.tenant_id)
        if session is not None and session.status is SessionStatus.WAITING_PAIRING:
            # Expired codes are never handed out again.
            session.pairing_code = None
        self.bus.publish(
            EventName.PAIRING_WINDOW_EXPIRED, window.tenant_id, {"code": window.code}
        )
