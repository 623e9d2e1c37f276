import asyncio
from typing import Dict, Optional

import pytest

from tripbot.providers.nillion import WALLET_SECRET_NAME
from tripbot.services.session_store import SessionStore


class FakeRedis:
    """The handful of redis.asyncio commands the session store uses."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.closed = False

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True


class FakeVault:
    """In-memory vault. Every call yields to the loop so concurrent callers interleave."""

    def __init__(self, app_ids=("A1", "A2", "A3")) -> None:
        self._app_ids = list(app_ids)
        self.secrets: Dict[str, str] = {}
        self.register_calls = 0
        self.store_calls = 0
        self.store_error: Optional[Exception] = None
        self.register_error: Optional[Exception] = None

    async def register_app_id(self) -> str:
        self.register_calls += 1
        await asyncio.sleep(0)
        if self.register_error is not None:
            raise self.register_error
        return self._app_ids.pop(0)

    async def store_secret(self, app_id, seed, value, secret_name=WALLET_SECRET_NAME) -> None:
        self.store_calls += 1
        await asyncio.sleep(0)
        if self.store_error is not None:
            raise self.store_error
        self.secrets[app_id] = value

    async def retrieve_secret(self, app_id, seed, secret_name=WALLET_SECRET_NAME) -> Optional[str]:
        await asyncio.sleep(0)
        return self.secrets.get(app_id)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return SessionStore(fake_redis)


@pytest.fixture
def fake_vault():
    return FakeVault()
