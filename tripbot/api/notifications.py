from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..bot.runtime import BotRuntime
from .deps import get_runtime, require_admin

router = APIRouter(prefix="/notifications", dependencies=[Depends(require_admin)])

FUNDING_COMPLETE_MESSAGE = "Funding is complete! This event was triggered successfully."


class BroadcastRequest(BaseModel):
    text: str = Field(min_length=1, max_length=4096, description="Message sent to every known chat")


@router.post("/broadcast")
async def broadcast(
    request: BroadcastRequest,
    runtime: BotRuntime = Depends(get_runtime),
) -> Dict[str, int]:
    """Fan a message out to every chat in the chat index."""
    delivered = await runtime.dispatcher.broadcast(request.text)
    return {"delivered": delivered}


@router.post("/funding-complete/{chat_id}")
async def funding_complete(
    chat_id: str,
    runtime: BotRuntime = Depends(get_runtime),
) -> Dict[str, bool]:
    """Tell a chat that its trip funding has been completed out-of-band."""
    sent = await runtime.telegram.send_message(chat_id, FUNDING_COMPLETE_MESSAGE)
    return {"sent": sent}
