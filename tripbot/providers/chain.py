"""Async signing and submission of transactions on Base."""

from __future__ import annotations

import logging
from typing import Any, Optional

from eth_account import Account
from eth_utils import to_checksum_address, to_hex
from web3 import AsyncHTTPProvider, AsyncWeb3

from ..config import settings
from ..core.errors import ChainError

logger = logging.getLogger(__name__)


class ChainClient:
    """
    Signs transactions locally and submits them through a JSON-RPC node.

    Keys are passed per call and never kept on the instance.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        chain_id: Optional[int] = None,
        web3: Optional[Any] = None,
        receipt_timeout: float = 120.0,
    ) -> None:
        self.chain_id = chain_id or settings.chain_id
        self.receipt_timeout = receipt_timeout
        self._w3 = web3 or AsyncWeb3(AsyncHTTPProvider(rpc_url or settings.base_rpc_url))

    async def send_transaction(
        self,
        private_key: str,
        to: str,
        value_wei: int,
        gas: int,
        data: str = "0x",
        wait: bool = False,
    ) -> str:
        """
        Sign and broadcast a transaction.

        Args:
            private_key: Sender key
            to: Recipient or contract address
            value_wei: Native value to transfer
            gas: Gas limit
            data: Calldata (hex)
            wait: Block until the receipt is available and check its status

        Returns:
            Transaction hash (hex)

        Raises:
            ChainError: If signing, submission or confirmation fails
        """
        try:
            sender = Account.from_key(private_key).address
            nonce = await self._w3.eth.get_transaction_count(sender, "pending")
            gas_price = await self._w3.eth.gas_price
            tx = {
                "chainId": self.chain_id,
                "nonce": nonce,
                "to": to_checksum_address(to),
                "value": value_wei,
                "gas": gas,
                "gasPrice": gas_price,
                "data": data,
            }
            signed = Account.sign_transaction(tx, private_key)
            tx_hash = to_hex(await self._w3.eth.send_raw_transaction(signed.raw_transaction))
        except Exception as e:
            raise ChainError(f"Failed to send transaction to {to}: {e}") from e

        logger.info(f"Sent transaction {tx_hash} from {sender} to {to}")

        if wait:
            await self.wait_for_receipt(tx_hash)
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> Any:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except Exception as e:
            raise ChainError(f"No receipt for {tx_hash}: {e}", tx_hash=tx_hash) from e

        if receipt.get("status") != 1:
            raise ChainError(f"Transaction {tx_hash} reverted", tx_hash=tx_hash)
        return receipt


__all__ = ["ChainClient"]
