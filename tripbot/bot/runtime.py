"""Construction of the bot's long-lived collaborators."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..config import settings
from ..core.session import ChatHistory, ChatSessionStateMachine
from ..core.wallet import WalletProvisioner
from ..providers.chain import ChainClient
from ..providers.nillion import NillionVault
from ..providers.search_agent import SearchAgentClient
from ..providers.telegram import TelegramAdapter
from ..services.session_store import SessionStore
from .handlers import BotDispatcher

logger = logging.getLogger(__name__)


@dataclass
class BotRuntime:
    store: SessionStore
    vault: NillionVault
    telegram: TelegramAdapter
    search_agent: SearchAgentClient
    sessions: ChatSessionStateMachine
    dispatcher: BotDispatcher

    async def close(self) -> None:
        await self.telegram.close()
        await self.search_agent.close()
        await self.vault.close()
        await self.store.close()


def build_runtime(redis_client: Optional[Any] = None) -> BotRuntime:
    """Wire the store, vault, chain, provisioner, state machine and dispatcher together."""

    if not settings.telegram_bot_token or not settings.nillion_user_seed:
        raise ValueError("TELEGRAM_BOT_TOKEN and NILLION_USER_ID must be set")

    store = SessionStore(redis_client)
    vault = NillionVault()
    chain = (
        ChainClient()
        if settings.enable_wallet_funding or settings.enable_basename_registration
        else None
    )
    provisioner = WalletProvisioner(vault, chain)
    sessions = ChatSessionStateMachine(store, vault, provisioner)
    telegram = TelegramAdapter()
    search_agent = SearchAgentClient()
    dispatcher = BotDispatcher(
        sessions,
        telegram,
        ChatHistory(limit=settings.chat_history_limit),
        search_agent=search_agent,
    )

    logger.info(
        "Bot runtime ready (funding=%s, basenames=%s, search_agent=%s)",
        settings.enable_wallet_funding,
        settings.enable_basename_registration,
        search_agent.enabled,
    )
    return BotRuntime(
        store=store,
        vault=vault,
        telegram=telegram,
        search_agent=search_agent,
        sessions=sessions,
        dispatcher=dispatcher,
    )


__all__ = ["BotRuntime", "build_runtime"]
