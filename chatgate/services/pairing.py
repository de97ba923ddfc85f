"""QR pairing timer — time-windowed gate on pairing-code issuance.

Once a code is handed to a caller, the tenant's window stays active for
``window_seconds`` (60s, the chat network's own code lifetime) and any further
request is refused with the remaining time. Expiry is driven by a loop timer,
so ``active`` flips exactly at ``issued_at + window_seconds`` whether or not
anyone is asking. Only expiry or a successful authentication ends a window.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from chatgate.core.errors import PairingActiveError
from chatgate.models.base import utcnow

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60.0


@dataclass(eq=False)
class PairingWindow:
    tenant_id: str
    issued_at: datetime
    started: float  # clock() reading at issue time
    window_seconds: float
    active: bool = True
    code: str | None = None
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.window_seconds)

    def cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


@dataclass
class PairingResult:
    status: str  # "qr" | "ready" | "authenticated"
    tenant_id: str
    code: str | None = None
    expires_in_seconds: int | None = None
    expires_at: datetime | None = None
    connected_at: datetime | None = None
    message: str = ""


class PairingGate:
    """Tracks one PairingWindow per tenant."""

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        on_expire: Callable[[PairingWindow], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self._on_expire = on_expire
        self._clock = clock
        self._windows: dict[str, PairingWindow] = {}

    def get(self, tenant_id: str) -> PairingWindow | None:
        return self._windows.get(tenant_id)

    def is_active(self, tenant_id: str) -> bool:
        window = self._windows.get(tenant_id)
        return window is not None and window.active

    def seconds_remaining(self, tenant_id: str) -> int:
        window = self._windows.get(tenant_id)
        if window is None or not window.active:
            return 0
        elapsed = self._clock() - window.started
        return max(0, int(window.window_seconds - math.floor(elapsed)))

    def open(self, tenant_id: str) -> PairingWindow:
        """Open a new window, or raise PairingActiveError if one is running."""
        current = self._windows.get(tenant_id)
        if current is not None and current.active:
            raise PairingActiveError(
                retry_after_seconds=self.seconds_remaining(tenant_id),
                message="Pairing code already issued; scan it or wait for it to expire",
            )

        window = PairingWindow(
            tenant_id=tenant_id,
            issued_at=utcnow(),
            started=self._clock(),
            window_seconds=self.window_seconds,
            code=current.code if current else None,
        )
        loop = asyncio.get_running_loop()
        window._timer = loop.call_later(self.window_seconds, self._expire, window)
        self._windows[tenant_id] = window
        logger.info(
            "Pairing window opened for tenant %s (%ss)", tenant_id, self.window_seconds
        )
        return window

    def record_code(self, tenant_id: str, code: str | None) -> None:
        window = self._windows.get(tenant_id)
        if window is not None and code:
            window.code = code

    def close(self, tenant_id: str) -> None:
        """End the window early (tenant authenticated); the code is kept."""
        window = self._windows.get(tenant_id)
        if window is None:
            return
        window.cancel_timer()
        window.active = False

    def drop(self, tenant_id: str) -> None:
        window = self._windows.pop(tenant_id, None)
        if window is not None:
            window.cancel_timer()

    def drop_all(self) -> None:
        for tenant_id in list(self._windows):
            self.drop(tenant_id)

    def _expire(self, window: PairingWindow) -> None:
        window._timer = None
        if self._windows.get(window.tenant_id) is not window or not window.active:
            return
        window.active = False
        logger.info("Pairing window expired for tenant %s", window.tenant_id)
        if self._on_expire is not None:
            self._on_expire(window)
