# src/pricewatch/notify/console.py
from __future__ import annotations

from typing import Protocol

import structlog

log = structlog.get_logger("notifier")


class Notifier(Protocol):
    async def send(self, recipient: str, text: str) -> None:
        """Deliver `text` to `recipient`; raise NotificationFailure on failure."""
        ...


class ConsoleNotifier:
    """Prints notifications; used when no Telegram bot token is configured."""

    async def send(self, recipient: str, text: str) -> None:
        print(f"[ALERT -> {recipient}]\n{text}", flush=True)
        log.info("console_notified", recipient=recipient)

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None
