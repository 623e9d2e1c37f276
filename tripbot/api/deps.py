from fastapi import Header, HTTPException, Request, status

from ..bot.runtime import BotRuntime
from ..config import settings


def get_runtime(request: Request) -> BotRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bot is not running")
    return runtime


def require_admin(authorization: str = Header(default="")) -> None:
    expected = settings.admin_api_token
    if not expected or authorization != f"Bearer {expected}":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
