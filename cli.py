#!/usr/bin/env python3
"""Operator CLI for running and poking the trip bot locally"""

import argparse
import asyncio
import signal

from tripbot.bot.runtime import build_runtime
from tripbot.config import settings
from tripbot.core.errors import ActivationFailed
from tripbot.logging_config import setup_logging


async def cli_poll():
    """Run the bot with long polling instead of the webhook."""
    runtime = build_runtime()
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    print("🤖 Polling Telegram (Ctrl+C to stop)...")
    try:
        await runtime.telegram.start_polling(runtime.dispatcher.dispatch, shutdown_event=stop)
    finally:
        await runtime.close()


async def cli_set_webhook(url: str):
    runtime = build_runtime()
    try:
        ok = await runtime.telegram.set_webhook(
            url, secret_token=settings.telegram_webhook_secret or None
        )
    finally:
        await runtime.close()
    print(f"✅ Webhook set to {url}" if ok else f"❌ Failed to set webhook to {url}")


async def cli_activate(chat_id: str):
    """Activate a chat by hand, without sending anything to it."""
    runtime = build_runtime()
    try:
        result = await runtime.sessions.on_chat_activated(chat_id)
    except ActivationFailed as e:
        print(f"❌ {e.message}: {e.__cause__}")
        return
    finally:
        await runtime.close()

    session = result.session
    print(f"\nChat {chat_id}: {result.previous_state.value} -> {result.state.value}")
    print("=" * 50)
    print(f"Nillion ID: {session.vault_app_id}")
    print(f"Wallet:     {session.wallet_address}")
    if result.provisioned and result.provisioned.name:
        print(f"Basename:   {result.provisioned.name}")
    for warning in result.warnings:
        print(f"⚠️  [{warning.context.category.value}] {warning.message}")


async def cli_chats():
    runtime = build_runtime()
    try:
        chat_ids = await runtime.sessions.chat_ids()
        print(f"\n{len(chat_ids)} known chats")
        print("-" * 50)
        for chat_id in chat_ids:
            session = await runtime.sessions.get_session(chat_id)
            if session is None:
                print(f"{chat_id:>16}  (no session record)")
                continue
            status = "booked" if session.completed else "open"
            print(f"{chat_id:>16}  {session.wallet_address or '-':<42}  {status}")
    finally:
        await runtime.close()


async def cli_broadcast(text: str):
    runtime = build_runtime()
    try:
        delivered = await runtime.dispatcher.broadcast(text)
    finally:
        await runtime.close()
    print(f"📣 Delivered to {delivered} chats")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trip bot CLI")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("poll", help="Run the bot with long polling")

    webhook_parser = subparsers.add_parser("set-webhook", help="Point Telegram at a webhook URL")
    webhook_parser.add_argument("url", help="Public URL of /telegram/webhook")

    activate_parser = subparsers.add_parser("activate", help="Initialize a chat's session and wallet")
    activate_parser.add_argument("chat_id", help="Telegram chat id")

    subparsers.add_parser("chats", help="List known chats")

    broadcast_parser = subparsers.add_parser("broadcast", help="Send a message to every known chat")
    broadcast_parser.add_argument("text", help="Message text")

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging()
    command = args.command.lower()

    if command == "poll":
        await cli_poll()

    elif command == "set-webhook":
        await cli_set_webhook(args.url)

    elif command == "activate":
        await cli_activate(args.chat_id)

    elif command == "chats":
        await cli_chats()

    elif command == "broadcast":
        await cli_broadcast(args.text)

    else:
        print(f"❌ Unknown command: {command}")
        parser.print_help()


if __name__ == "__main__":
    asyncio.run(main())
