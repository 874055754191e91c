from __future__ import annotations

from typing import Optional

import structlog

from pricewatch.alerts.formatting import escape_md, format_alert_list, format_refresh_result, format_welcome
from pricewatch.errors import NotificationFailure, PriceWatchError
from pricewatch.notify.console import Notifier
from pricewatch.service import AlertService

log = structlog.get_logger("bot")


def parse_command(text: str) -> tuple[Optional[str], list[str]]:
    """
    "/myalerts@SomeBot extra" -> ("myalerts", ["extra"]).
    Returns (None, []) for anything that is not a slash command.
    """
    parts = (text or "").strip().split()
    if not parts or not parts[0].startswith("/"):
        return None, []
    cmd = parts[0][1:].split("@", 1)[0].lower()
    return (cmd or None), parts[1:]


def extract_message(update: dict) -> tuple[Optional[str], Optional[str]]:
    """(chat_id, text) from a Telegram update; (None, None) if it carries no text message."""
    msg = update.get("message") or update.get("edited_message")
    if not isinstance(msg, dict):
        return None, None
    chat = msg.get("chat")
    if not isinstance(chat, dict):
        return None, None
    chat_id = chat.get("id")
    text = msg.get("text")
    if chat_id is None or not isinstance(text, str):
        return None, None
    return str(chat_id), text


class CommandHandler:
    """
    Maps chat commands onto AlertService operations and replies through the
    notifier:

      /start            welcome text with the chat id
      /myalerts         the chat's alerts with live (or stale-labelled) prices
      /refresh          run a monitoring cycle now
      /cancel <id>      cancel one of the chat's alerts
    """
    def __init__(self, service: AlertService, notifier: Notifier):
        self.service = service
        self.notifier = notifier

    async def handle_update(self, update: dict) -> Optional[str]:
        """Process one webhook update. Returns the handled command name, if any."""
        chat_id, text = extract_message(update)
        if chat_id is None:
            return None
        cmd, args = parse_command(text or "")
        if cmd is None:
            return None

        handler = {
            "start": self._start,
            "myalerts": self._myalerts,
            "refresh": self._refresh,
            "cancel": self._cancel,
        }.get(cmd)
        if handler is None:
            log.info("bot_unknown_command", cmd=cmd, chat_id=chat_id)
            return None

        log.info("bot_command", cmd=cmd, chat_id=chat_id)
        await handler(chat_id, args)
        return cmd

    async def _reply(self, chat_id: str, text: str) -> None:
        try:
            await self.notifier.send(chat_id, text)
        except NotificationFailure as e:
            log.warning("bot_reply_failed", chat_id=chat_id, err=e.reason)

    async def _start(self, chat_id: str, args: list[str]) -> None:
        await self._reply(chat_id, format_welcome(chat_id))

    async def _myalerts(self, chat_id: str, args: list[str]) -> None:
        alerts = await self.service.store.list_by_recipient(chat_id)
        if not alerts:
            await self._reply(chat_id, format_alert_list([]))
            return
        await self._reply(chat_id, "Fetching current market prices...")
        listed = await self.service.list_alerts(chat_id)
        await self._reply(chat_id, format_alert_list(listed))

    async def _refresh(self, chat_id: str, args: list[str]) -> None:
        await self._reply(chat_id, "Running alert check across all monitored tokens...")
        try:
            report = await self.service.refresh()
        except PriceWatchError as e:
            log.error("bot_refresh_failed", err=str(e))
            await self._reply(chat_id, format_refresh_result(False))
            return
        await self._reply(chat_id, format_refresh_result(True, report.triggered_count))

    async def _cancel(self, chat_id: str, args: list[str]) -> None:
        if not args:
            await self._reply(chat_id, "Usage: /cancel <alert id>")
            return
        alert_id = args[0]
        mine = {a.id for a in await self.service.store.list_by_recipient(chat_id)}
        if alert_id not in mine:
            await self._reply(
                chat_id,
                f"Alert {escape_md(alert_id)} could not be located. It may have already been triggered or canceled.",
            )
            return
        removed = await self.service.cancel_alert(alert_id, recipient=chat_id)
        if removed is None:
            await self._reply(chat_id, f"Alert {escape_md(alert_id)} was already triggered or canceled.")
