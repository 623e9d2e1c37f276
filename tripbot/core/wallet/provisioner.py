"""
Chat wallet provisioning.

Creates a fresh EVM wallet for a chat, escrows its private key in the vault
and optionally funds it and registers a Basename for it.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from eth_account import Account
from eth_utils import to_hex, to_wei

from ...config import settings
from ...providers.chain import ChainClient
from ...providers.nillion import WALLET_SECRET_NAME, NillionVault, VaultError
from ..errors import FundingFailed, NamingFailed, ProvisioningFailed, TripbotError
from .basename import (
    REGISTRATION_FEE_ETH,
    REGISTRATION_GAS_LIMIT,
    build_register_call_data,
    build_register_request,
    generate_agent_name,
)

logger = logging.getLogger(__name__)

FUNDING_AMOUNT_ETH = Decimal("0.01")
FUNDING_GAS_LIMIT = 21000


@dataclass
class ProvisionResult:
    """Outcome of provisioning. ``address`` is only set once the key is escrowed."""

    address: str
    name: Optional[str] = None
    funding_tx: Optional[str] = None
    registration_tx: Optional[str] = None
    warnings: List[TripbotError] = field(default_factory=list)

    @property
    def funded(self) -> bool:
        return self.funding_tx is not None

    @property
    def named(self) -> bool:
        return self.name is not None


class WalletProvisioner:
    """
    Provisions one wallet per chat.

    Only key escrow is fatal. Funding and naming failures are recorded on the
    result as ``FundingFailed`` / ``NamingFailed`` warnings.

    Usage:
        provisioner = WalletProvisioner(vault, chain)
        result = await provisioner.provision(chat_id="100", app_id="A1")
        print(result.address, result.name, result.warnings)
    """

    def __init__(
        self,
        vault: NillionVault,
        chain: Optional[ChainClient] = None,
        *,
        seed: Optional[str] = None,
        funding_private_key: Optional[str] = None,
        enable_funding: Optional[bool] = None,
        enable_basename_registration: Optional[bool] = None,
        registrar_address: Optional[str] = None,
        resolver_address: Optional[str] = None,
        name_rng: Optional[random.Random] = None,
    ) -> None:
        self._vault = vault
        self._chain = chain
        self._seed = seed if seed is not None else settings.nillion_user_seed
        self._funding_key = (
            funding_private_key if funding_private_key is not None else settings.funding_private_key
        )
        self.enable_funding = (
            settings.enable_wallet_funding if enable_funding is None else enable_funding
        )
        self.enable_basename_registration = (
            settings.enable_basename_registration
            if enable_basename_registration is None
            else enable_basename_registration
        )
        self._registrar = registrar_address or settings.basename_registrar_address
        self._resolver = resolver_address or settings.basename_resolver_address
        self._name_rng = name_rng

    async def provision(self, chat_id: str, app_id: str) -> ProvisionResult:
        """
        Create, escrow, fund and name a wallet for ``chat_id``.

        Args:
            chat_id: Chat the wallet belongs to (logging only)
            app_id: Vault app id the key is stored under

        Returns:
            ProvisionResult with the wallet address

        Raises:
            ProvisioningFailed: If the key could not be stored in the vault
        """
        if not app_id or not self._seed:
            raise ProvisioningFailed("App ID and vault seed are required to create a wallet", chat_id=chat_id)

        account = Account.create()
        logger.info(f"Created wallet for chat {chat_id}: {account.address}")

        try:
            await self._vault.store_secret(app_id, self._seed, to_hex(account.key), WALLET_SECRET_NAME)
        except VaultError as e:
            raise ProvisioningFailed(
                f"Could not escrow key for chat {chat_id}: {e}", chat_id=chat_id
            ) from e

        result = ProvisionResult(address=account.address)

        if self.enable_funding:
            await self._fund(chat_id, result)

        if self.enable_basename_registration:
            await self._register_name(chat_id, result)

        return result

    async def _fund(self, chat_id: str, result: ProvisionResult) -> None:
        try:
            if self._chain is None or not self._funding_key:
                raise FundingFailed("No chain client or funding key configured", chat_id=chat_id)
            result.funding_tx = await self._chain.send_transaction(
                self._funding_key,
                to=result.address,
                value_wei=to_wei(FUNDING_AMOUNT_ETH, "ether"),
                gas=FUNDING_GAS_LIMIT,
            )
            logger.info(f"Funded wallet {result.address} for chat {chat_id}: {result.funding_tx}")
        except FundingFailed as e:
            logger.warning(f"Funding skipped for chat {chat_id}: {e}")
            result.warnings.append(e)
        except Exception as e:
            logger.warning(f"Funding failed for chat {chat_id}: {e}")
            result.warnings.append(FundingFailed(str(e), chat_id=chat_id))

    async def _register_name(self, chat_id: str, result: ProvisionResult) -> None:
        base_name = generate_agent_name(self._name_rng)
        try:
            if self._chain is None or not self._funding_key:
                raise NamingFailed("No chain client or registration key configured", chat_id=chat_id)
            request = build_register_request(base_name, owner=result.address, resolver=self._resolver)
            # The operator account pays the registration fee; the chat wallet owns the name
            result.registration_tx = await self._chain.send_transaction(
                self._funding_key,
                to=self._registrar,
                value_wei=to_wei(Decimal(REGISTRATION_FEE_ETH), "ether"),
                gas=REGISTRATION_GAS_LIMIT,
                data=build_register_call_data(request),
                wait=True,
            )
            result.name = base_name
            logger.info(f"Registered {base_name} for wallet {result.address}")
        except NamingFailed as e:
            logger.warning(f"Basename registration skipped for chat {chat_id}: {e}")
            result.warnings.append(e)
        except Exception as e:
            logger.warning(f"Basename registration failed for chat {chat_id}: {e}")
            result.warnings.append(NamingFailed(str(e), chat_id=chat_id))


__all__ = [
    "WalletProvisioner",
    "ProvisionResult",
    "FUNDING_AMOUNT_ETH",
    "FUNDING_GAS_LIMIT",
]
