"""Credential probe — detects persisted chat-account credentials on disk.

Each tenant's credentials live in ``<root>/session-<tenant_id>``. The
directory's presence is the only signal used to decide whether a tenant can
be restored without pairing.
"""

import asyncio
import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

DIR_PREFIX = "session-"


class CredentialProbe:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, tenant_id: str) -> Path:
        return self.root / f"{DIR_PREFIX}{tenant_id}"

    def exists(self, tenant_id: str) -> bool:
        return self.path_for(tenant_id).is_dir()

    def list_tenants(self) -> list[str]:
        """Tenant ids with a credential directory, sorted."""
        try:
            entries = list(self.root.iterdir())
        except FileNotFoundError:
            return []
        return sorted(
            p.name[len(DIR_PREFIX):]
            for p in entries
            if p.is_dir() and p.name.startswith(DIR_PREFIX)
        )

    async def discard(self, tenant_id: str) -> bool:
        """Remove a tenant's credential directory (e.g. after logout)."""
        path = self.path_for(tenant_id)
        if not path.is_dir():
            return False
        await asyncio.to_thread(shutil.rmtree, path, ignore_errors=True)
        logger.info("Discarded credentials for tenant %s", tenant_id)
        return True
