"""V1 API router aggregation."""

from fastapi import APIRouter

from chatgate.api.v1.messages import router as messages_router
from chatgate.api.v1.sessions import router as sessions_router
from chatgate.api.v1.system import router as system_router
from chatgate.api.v1.webhooks import router as webhooks_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(sessions_router)
v1_router.include_router(messages_router)
v1_router.include_router(webhooks_router)
v1_router.include_router(system_router)
