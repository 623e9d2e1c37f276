from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import health, notifications, telegram
from .bot.runtime import build_runtime
from .config import settings
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    runtime = build_runtime()
    if runtime.telegram.is_configured() and not runtime.telegram.bot_username:
        await runtime.telegram.get_me()
    app.state.runtime = runtime
    try:
        yield
    finally:
        await runtime.close()


def create_app(with_runtime: bool = True) -> FastAPI:
    app = FastAPI(
        title="Trip Wallet Bot",
        description="Telegram trip-planning bot with per-chat custodial wallets",
        version="0.1.0",
        lifespan=lifespan if with_runtime else None,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["Health"])
    app.include_router(telegram.router, tags=["Telegram"])
    app.include_router(notifications.router, tags=["Notifications"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tripbot.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
