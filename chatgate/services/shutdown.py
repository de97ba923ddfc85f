"""Shutdown coordinator — drains every session on process termination."""

import asyncio
import logging

from chatgate.services.registry import SessionRegistry
from chatgate.services.webhook_dispatch import WebhookDispatcher

logger = logging.getLogger(__name__)


class ShutdownCoordinator:
    def __init__(
        self,
        registry: SessionRegistry,
        webhooks: WebhookDispatcher | None = None,
    ) -> None:
        self.registry = registry
        self.webhooks = webhooks

    async def drain_all(self) -> None:
        """Destroy all sessions concurrently. Never raises; safe to repeat."""
        try:
            await self.registry.cancel_pending()
            tenant_ids = self.registry.tenant_ids()
            logger.info("Shutting down %d session(s)...", len(tenant_ids))

            results = await asyncio.gather(
                *(self.registry.destroy(t) for t in tenant_ids),
                return_exceptions=True,
            )
            for tenant_id, result in zip(tenant_ids, results):
                if isinstance(result, BaseException):
                    logger.error(
                        "Error destroying session %s during shutdown: %r", tenant_id, result
                    )
            self.registry.pairing.drop_all()

            if self.webhooks is not None:
                await self.webhooks.aclose()
        except Exception:
            logger.exception("Shutdown drain failed")
            return
        logger.info("All sessions shut down")
