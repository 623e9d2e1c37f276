from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Assemble a Redis URL from the legacy host/port/password variables."""

        super().model_post_init(__context)

        if not self.redis_url and self.redis_host:
            auth = f":{self.redis_password}@" if self.redis_password else ""
            url = f"redis://{auth}{self.redis_host}:{self.redis_port}/0"
            object.__setattr__(self, "redis_url", url)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=3000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Telegram
    telegram_bot_token: str = Field(default="", description="Telegram bot token")
    telegram_bot_username: str = Field(
        default="",
        description="Bot username without @; looked up with getMe at startup when empty",
    )
    telegram_webhook_secret: str = Field(
        default="",
        description="Value expected in X-Telegram-Bot-Api-Secret-Token on webhook calls",
    )
    admin_api_token: str = Field(default="", description="Bearer token for the notification endpoints")

    # Session store
    redis_url: str = Field(default="", description="Redis connection string for chat sessions")
    redis_host: str = Field(default="", description="Redis host (used when redis_url is empty)")
    redis_port: int = Field(default=13744, description="Redis port (used when redis_url is empty)")
    redis_password: str = Field(default="", description="Redis password (used when redis_url is empty)")

    # Nillion secret storage
    nillion_api_base_url: str = Field(
        default="https://nillion-storage-apis-v0.onrender.com",
        description="Base URL of the Nillion storage API",
    )
    nillion_user_seed: str = Field(
        default="",
        description="Seed used to store and retrieve secrets as the bot's Nillion user",
        validation_alias=AliasChoices("nillion_user_seed", "nillion_user_id", "NILLION_USER_ID"),
    )
    vault_timeout_seconds: float = Field(default=30.0, description="Vault request timeout")

    # Chain
    base_rpc_url: str = Field(default="https://sepolia.base.org", description="Base JSON-RPC endpoint")
    chain_id: int = Field(default=84532, description="Chain ID used when signing transactions")
    funding_private_key: str = Field(default="", description="Operator key that funds new wallets")
    basename_registrar_address: str = Field(
        default="0x49aE3cC2e3AA768B1e5654f5D3C6002144A59581",
        description="Basename registrar controller",
    )
    basename_resolver_address: str = Field(
        default="0x6533C94869D28fAA8dF77cc63f9e2b2D6Cf77eBA",
        description="Basename L2 resolver",
    )

    # Feature Flags
    enable_wallet_funding: bool = Field(default=False, description="Fund new wallets from the operator key")
    enable_basename_registration: bool = Field(default=False, description="Register a Basename for new wallets")
    enable_key_export: bool = Field(default=False, description="Allow /getkey to reveal the chat wallet key")

    # Booking search agent
    search_agent_url: str = Field(default="", description="Booking-intent extraction service endpoint")
    search_agent_timeout_seconds: float = Field(default=5.0, description="Per-attempt timeout")
    search_agent_max_attempts: int = Field(default=3, description="Attempts before giving up")

    # Chat history
    chat_history_limit: int = Field(default=1000, description="Messages kept per chat")


settings = Settings()
