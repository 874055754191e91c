from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

from pricewatch.errors import NotificationFailure
from pricewatch.utils.pacing import RateLimiter, jitter, next_backoff

log = structlog.get_logger("telegram")

API_BASE = "https://api.telegram.org"

# --------- config ----------

@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    parse_mode: Optional[str] = "Markdown"  # "Markdown", "MarkdownV2", "HTML" or None
    timeout_s: float = 8.0
    rate_per_sec: float = 25.0   # bot-wide; Telegram caps around 30 msg/s
    burst: int = 5
    max_retries: int = 4
    initial_backoff_s: float = 0.5
    max_backoff_s: float = 8.0
    webhook_secret: Optional[str] = None
    api_base: str = API_BASE


def config_from_env() -> TelegramConfig:
    """Build TelegramConfig from env; raises RuntimeError when no bot token is set."""
    token = os.getenv("TGBOT_TOKEN") or os.getenv("TELEGRAM_BOT_TOKEN")
    if not token:
        raise RuntimeError("TGBOT_TOKEN / TELEGRAM_BOT_TOKEN not set")
    return TelegramConfig(
        bot_token=token,
        webhook_secret=os.getenv("TELEGRAM_WEBHOOK_SECRET") or None,
    )

# --------- client ----------

class TelegramNotifier:
    """
    Notification Dispatcher over the Telegram Bot API (sendMessage).

    send() delivers one message or raises NotificationFailure. Retries only
    where the message cannot have been delivered: 429 (honouring
    retry_after), 5xx, and failures to connect. A request that timed out may
    have reached Telegram, so it is not retried.
    """
    def __init__(self, cfg: TelegramConfig, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self._session = session
        self._owns_session = session is None
        self._rl = RateLimiter(rate_per_sec=cfg.rate_per_sec, burst=cfg.burst)

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def send(self, recipient: str, text: str) -> None:
        if self._session is None:
            await self.start()
        assert self._session is not None

        url = f"{self.cfg.api_base}/bot{self.cfg.bot_token}/sendMessage"
        payload = {"chat_id": recipient, "text": text}
        if self.cfg.parse_mode:
            payload["parse_mode"] = self.cfg.parse_mode

        backoff = self.cfg.initial_backoff_s
        last_err = "no attempt"
        for attempt in range(1, self.cfg.max_retries + 1):
            await self._rl.acquire()
            try:
                async with self._session.post(url, data=payload) as resp:
                    if resp.status == 200:
                        return
                    detail = await _maybe_text(resp)
                    last_err = f"http {resp.status}"
                    log.warning("telegram_send_failed", status=resp.status, body=detail[:200], attempt=attempt)
                    if resp.status == 429:
                        ra = await _retry_after(resp)
                        if ra is not None and attempt < self.cfg.max_retries:
                            await asyncio.sleep(ra)
                            continue
                    elif not 500 <= resp.status < 600:
                        # other 4xx: bad chat id, blocked bot, bad markup
                        raise NotificationFailure(recipient, f"{last_err}: {detail[:200]}")
            except aiohttp.ClientConnectorError as e:
                last_err = f"connect error: {e}"
                log.warning("telegram_network_error", err=str(e), attempt=attempt)
            except asyncio.TimeoutError as e:
                raise NotificationFailure(recipient, "timeout (delivery unknown)") from e
            except aiohttp.ClientError as e:
                raise NotificationFailure(recipient, f"client error: {e}") from e

            if attempt < self.cfg.max_retries:
                await asyncio.sleep(jitter(backoff))
                backoff = next_backoff(backoff, self.cfg.max_backoff_s)

        log.error("telegram_give_up_after_retries", recipient=recipient)
        raise NotificationFailure(recipient, f"gave up after {self.cfg.max_retries} attempts ({last_err})")


async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return "<no body>"


async def _retry_after(resp: aiohttp.ClientResponse) -> Optional[float]:
    # {"ok": false, "error_code": 429, "parameters": {"retry_after": 3}}
    try:
        data = await resp.json(content_type=None)
        ra = (data.get("parameters") or {}).get("retry_after")
        return float(ra) if ra is not None else None
    except (aiohttp.ClientError, ValueError, TypeError, AttributeError):
        return None
