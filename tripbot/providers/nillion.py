"""
Async client for the Nillion storage API.

The bot uses it as a secret vault: every chat gets its own app id, and the
chat wallet's private key is stored as a secret under that app id.

Example usage:
    vault = NillionVault()
    app_id = await vault.register_app_id()
    await vault.store_secret(app_id, seed, private_key)
    key = await vault.retrieve_secret(app_id, seed)  # None until stored
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import ErrorCategory, TripbotError

logger = logging.getLogger(__name__)

WALLET_SECRET_NAME = "wallet_private_key"


class VaultError(TripbotError):
    """Base exception for vault errors."""

    category = ErrorCategory.VAULT


class VaultUnavailable(VaultError):
    """App id registration failed."""


class VaultWriteError(VaultError):
    """Storing a secret failed."""


class VaultReadError(VaultError):
    """Looking up a secret failed (distinct from the secret being absent)."""


class NillionVault:
    """Thin wrapper around the Nillion storage API endpoints."""

    name = "nillion"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.nillion_api_base_url).rstrip("/")
        self.timeout = timeout or settings.vault_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def register_app_id(self) -> str:
        """
        Register a new app id with the vault.

        The server is authoritative for uniqueness; the client never checks.

        Raises:
            VaultUnavailable: On network errors, non-200 responses or a
                response without ``app_id``.
        """
        client = await self._get_client()

        try:
            response = await client.post("/api/apps/register")
        except httpx.RequestError as e:
            raise VaultUnavailable(f"Vault registration request failed: {e}") from e

        if response.status_code != 200:
            raise VaultUnavailable(
                f"Vault registration returned {response.status_code}: {response.text}"
            )

        app_id = _json_or_empty(response).get("app_id")
        if not app_id:
            raise VaultUnavailable(f"Vault registration returned no app_id: {response.text}")

        logger.info(f"Registered new App ID: {app_id}")
        return str(app_id)

    async def store_secret(
        self,
        app_id: str,
        seed: str,
        value: str,
        secret_name: str = WALLET_SECRET_NAME,
    ) -> None:
        """
        Store ``value`` under ``app_id``. Single attempt; retries belong to the caller.

        Raises:
            VaultWriteError: If the request fails or is not accepted.
        """
        client = await self._get_client()
        payload: Dict[str, Any] = {
            "secret": {
                "nillion_seed": seed,
                "secret_value": value,
                "secret_name": secret_name,
            },
            "permissions": {
                "retrieve": [],
                "update": [],
                "delete": [],
                "compute": {},
            },
        }

        try:
            response = await client.post(f"/api/apps/{app_id}/secrets", json=payload)
        except httpx.RequestError as e:
            raise VaultWriteError(f"Vault store request failed: {e}") from e

        if response.status_code != 200:
            raise VaultWriteError(
                f"Vault refused secret for App ID {app_id}: {response.status_code} {response.text}"
            )

        logger.info(f"Secret '{secret_name}' stored for App ID: {app_id}")

    async def retrieve_secret(
        self,
        app_id: str,
        seed: str,
        secret_name: str = WALLET_SECRET_NAME,
    ) -> Optional[str]:
        """
        Fetch the secret stored for ``app_id``.

        Returns:
            The secret value, or ``None`` when the app has no stored secrets
            yet (the normal "not provisioned" case).

        Raises:
            VaultReadError: On network or service errors.
        """
        client = await self._get_client()

        try:
            response = await client.get(f"/api/apps/{app_id}/store_ids")
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise VaultReadError(f"Store id lookup failed: {e.response.text}") from e
        except httpx.RequestError as e:
            raise VaultReadError(f"Store id request failed: {e}") from e

        store_ids = _json_or_empty(response).get("store_ids") or []
        if not store_ids:
            logger.info(f"No store IDs found for App ID: {app_id}")
            return None

        entry = next(
            (item for item in store_ids if item.get("secret_name") == secret_name),
            store_ids[0],
        )

        try:
            response = await client.get(
                f"/api/secret/retrieve/{entry['store_id']}",
                params={
                    "retrieve_as_nillion_user_seed": seed,
                    "secret_name": entry.get("secret_name", secret_name),
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise VaultReadError(f"Secret retrieval failed: {e.response.text}") from e
        except httpx.RequestError as e:
            raise VaultReadError(f"Secret retrieval request failed: {e}") from e

        secret = _json_or_empty(response).get("secret")
        if not secret:
            raise VaultReadError(f"Vault returned no secret for store id {entry['store_id']}")

        logger.info(f"Secret retrieved for App ID: {app_id}")
        return secret

    async def health_check(self) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.get("/", timeout=5.0)
        except httpx.RequestError as e:
            return {"status": "unavailable", "error": str(e)}
        return {
            "status": "healthy" if response.status_code < 500 else "degraded",
            "status_code": response.status_code,
        }


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


__all__ = [
    "NillionVault",
    "VaultError",
    "VaultUnavailable",
    "VaultWriteError",
    "VaultReadError",
    "WALLET_SECRET_NAME",
]
