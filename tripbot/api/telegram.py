import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Header, HTTPException, status

from ..bot.runtime import BotRuntime
from ..config import settings
from ..providers.telegram import parse_update
from ..types import InboundEvent
from .deps import get_runtime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram")


async def _dispatch_update(
    runtime: BotRuntime, event: InboundEvent, update_id: Optional[int]
) -> None:
    try:
        await runtime.dispatcher.dispatch(event)
    except Exception as e:
        logger.error(f"Failed to handle update {update_id}: {e}", exc_info=True)


@router.post("/webhook")
async def telegram_webhook(
    background_tasks: BackgroundTasks,
    update: Dict[str, Any] = Body(...),
    secret_token: str = Header(default="", alias="X-Telegram-Bot-Api-Secret-Token"),
    runtime: BotRuntime = Depends(get_runtime),
) -> Dict[str, bool]:
    """
    Receive one Telegram update.

    The update is acknowledged before it is handled: activation can wait
    minutes on chain receipts, and Telegram re-delivers anything it does not
    see a 2xx for within its timeout.
    """

    if settings.telegram_webhook_secret and secret_token != settings.telegram_webhook_secret:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid secret token")

    event = parse_update(update, runtime.telegram.bot_username)
    if event is not None:
        background_tasks.add_task(_dispatch_update, runtime, event, update.get("update_id"))
    return {"ok": True}
