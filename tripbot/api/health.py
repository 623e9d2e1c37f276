from typing import Any, Dict

from fastapi import APIRouter, Depends, Response

from ..bot.runtime import BotRuntime
from .deps import get_runtime

router = APIRouter()


@router.get("/")
async def root() -> Response:
    """Liveness probe for the hosting platform."""
    return Response(status_code=200)


@router.get("/healthz")
async def health_check(runtime: BotRuntime = Depends(get_runtime)) -> Dict[str, Any]:
    """Health check endpoint that verifies the session store and the vault"""

    services = {
        "redis": {"status": "healthy" if await runtime.store.ping() else "unavailable"},
        "nillion": await runtime.vault.health_check(),
    }
    all_healthy = all(status["status"] == "healthy" for status in services.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "services": services,
        "search_agent": runtime.search_agent.enabled,
    }
