import asyncio

import pytest

from pricewatch.errors import NotificationFailure
from pricewatch.notify import telegram
from pricewatch.notify.telegram import TelegramConfig, TelegramNotifier
from tests.helpers.fake_http import FakeResponse, FakeSession


def make_notifier(script, **cfg):
    session = FakeSession(script)
    cfg.setdefault("initial_backoff_s", 0.001)
    cfg.setdefault("max_backoff_s", 0.002)
    n = TelegramNotifier(TelegramConfig(bot_token="TOKEN", rate_per_sec=1000, burst=100, **cfg), session=session)
    return n, session


@pytest.mark.asyncio
async def test_send_posts_markdown_message():
    n, session = make_notifier([FakeResponse(200, {"ok": True})])
    await n.send("12345", "*hi*")
    method, url, kwargs = session.requests[0]
    assert method == "POST"
    assert url == "https://api.telegram.org/botTOKEN/sendMessage"
    assert kwargs["data"] == {"chat_id": "12345", "text": "*hi*", "parse_mode": "Markdown"}


@pytest.mark.asyncio
async def test_bad_request_fails_without_retry():
    n, session = make_notifier([FakeResponse(400, {"ok": False, "description": "chat not found"})])
    with pytest.raises(NotificationFailure) as ei:
        await n.send("1", "x")
    assert "400" in ei.value.reason
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_429_honours_retry_after(monkeypatch):
    slept = []
    real_sleep = asyncio.sleep

    async def fake_sleep(s):
        slept.append(s)
        await real_sleep(0)

    monkeypatch.setattr(telegram.asyncio, "sleep", fake_sleep)
    n, session = make_notifier([
        FakeResponse(429, {"ok": False, "parameters": {"retry_after": 3}}),
        FakeResponse(200, {"ok": True}),
    ])
    await n.send("1", "x")
    assert 3.0 in slept
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_timeout_is_not_retried():
    n, session = make_notifier([asyncio.TimeoutError(), FakeResponse(200, {"ok": True})])
    with pytest.raises(NotificationFailure):
        await n.send("1", "x")
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_server_errors_exhaust_retries():
    n, session = make_notifier([FakeResponse(502, {})] * 3, max_retries=3)
    with pytest.raises(NotificationFailure):
        await n.send("1", "x")
    assert len(session.requests) == 3


def test_config_from_env(monkeypatch):
    monkeypatch.delenv("TGBOT_TOKEN", raising=False)
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    with pytest.raises(RuntimeError):
        telegram.config_from_env()
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "abc")
    monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", "s3cret")
    cfg = telegram.config_from_env()
    assert cfg.bot_token == "abc"
    assert cfg.webhook_secret == "s3cret"
