"""
Chat Session State Machine

Drives a chat through UNINITIALIZED -> HAS_APP_ID -> HAS_WALLET and records
booking intents. Every step is persisted as soon as it is taken, so a failed
activation is resumed by the next one.
"""

import logging
from typing import List, Optional

from eth_account import Account

from ...config import settings
from ...providers.nillion import NillionVault
from ...services.session_store import SessionStore
from ...types.session import BookingRequest, Session
from ..errors import ActivationFailed, WalletNotProvisioned
from ..wallet.provisioner import WalletProvisioner
from .locks import ChatLocks
from .models import ActivationResult, SessionState


class ChatSessionStateMachine:
    """
    Per-chat orchestrator for wallet provisioning and booking capture.

    Wallet presence is decided by asking the vault for a stored key, not by
    the session's ``walletAddress`` field, so a session whose last write was
    lost still converges on exactly one wallet; its address is recovered
    from the escrowed key.
    """

    def __init__(
        self,
        store: SessionStore,
        vault: NillionVault,
        provisioner: WalletProvisioner,
        locks: Optional[ChatLocks] = None,
        seed: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._store = store
        self._vault = vault
        self._provisioner = provisioner
        self._locks = locks or ChatLocks()
        self._seed = seed if seed is not None else settings.nillion_user_seed
        self.logger = logger or logging.getLogger(__name__)

    @property
    def locks(self) -> ChatLocks:
        return self._locks

    async def get_session(self, chat_id: str) -> Optional[Session]:
        return await self._store.get_session(chat_id)

    async def chat_ids(self) -> List[str]:
        """Every chat the bot has been activated in."""
        return await self._store.list_chat_ids()

    async def on_chat_activated(self, chat_id: str) -> ActivationResult:
        """
        Load or create the chat's session and make sure it has a wallet.

        Returns:
            ActivationResult describing what was done

        Raises:
            ActivationFailed: On any error. Whatever was persisted before
                the failure stays; nothing is rolled back.
        """
        async with self._locks.hold(chat_id):
            try:
                return await self._activate(chat_id)
            except Exception as e:
                self.logger.error(f"Initialization failed for chat {chat_id}: {e}", exc_info=True)
                raise ActivationFailed(
                    f"Failed to initialize chat {chat_id}", chat_id=chat_id
                ) from e

    async def _activate(self, chat_id: str) -> ActivationResult:
        session = await self._store.get_session(chat_id) or Session(chat_id=chat_id)
        result = ActivationResult(session=session, previous_state=SessionState.of(session))

        if not session.vault_app_id:
            session.vault_app_id = await self._vault.register_app_id()
            result.registered_app_id = True
            # Persisted before any further network call
            await self._store.save_session(session)
            self.logger.info(f"Bound App ID {session.vault_app_id} to chat {chat_id}")

        existing_key = await self._vault.retrieve_secret(session.vault_app_id, self._seed)

        if existing_key is None:
            provisioned = await self._provisioner.provision(chat_id, session.vault_app_id)
            session.wallet_address = provisioned.address
            result.provisioned = provisioned
            result.warnings.extend(provisioned.warnings)
        elif not session.wallet_address:
            # Key escrowed by an earlier run whose final write was lost
            session.wallet_address = Account.from_key(existing_key).address
            self.logger.warning(f"Recovered wallet address for chat {chat_id} from its escrowed key")
        else:
            self.logger.info(f"Chat {chat_id} already has an escrowed wallet key")

        await self._store.save_session(session)
        result.added_to_index = await self._store.add_chat_id(chat_id)

        self.logger.info(
            f"Chat {chat_id} activated: {result.previous_state.value} -> {result.state.value}"
        )
        return result

    async def record_booking(self, chat_id: str, booking: BookingRequest) -> Session:
        """Store a captured booking intent and mark the chat as completed."""
        async with self._locks.hold(chat_id):
            session = await self._store.get_session(chat_id) or Session(chat_id=chat_id)
            session.booking_request = booking
            session.completed = True
            await self._store.save_session(session)
        self.logger.info(f"Booking request captured for chat {chat_id}")
        return session

    async def retrieve_wallet_key(self, chat_id: str) -> str:
        """
        Fetch the chat wallet's private key from the vault.

        Raises:
            WalletNotProvisioned: If the chat has no wallet, no app id, or no
                escrowed key
            VaultReadError: If the vault lookup fails
        """
        session = await self._store.get_session(chat_id)
        if session is None or not session.wallet_address:
            raise WalletNotProvisioned(
                "No wallet has been created for this chat yet. Use /start to create one.",
                chat_id=chat_id,
            )
        if not session.vault_app_id:
            raise WalletNotProvisioned("No Nillion ID found for this chat.", chat_id=chat_id)

        key = await self._vault.retrieve_secret(session.vault_app_id, self._seed)
        if key is None:
            raise WalletNotProvisioned(
                "No key is escrowed for this chat yet. Use /start to create one.",
                chat_id=chat_id,
            )
        return key


__all__ = ["ChatSessionStateMachine"]
