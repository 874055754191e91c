# src/pricewatch/main.py
import asyncio
import logging

import structlog
from aiohttp import web
from dotenv import load_dotenv
from redis.asyncio import Redis

from pricewatch.bot.commands import CommandHandler
from pricewatch.config import Settings, settings_from_env
from pricewatch.lookup.dexscreener import DexScreenerClient
from pricewatch.monitor.cycle import MonitoringCycle
from pricewatch.monitor.scheduler import Scheduler
from pricewatch.notify.console import ConsoleNotifier
from pricewatch.notify.telegram import TelegramNotifier, config_from_env as telegram_config_from_env
from pricewatch.service import AlertService
from pricewatch.storage.alert_store import RedisAlertStore
from pricewatch.storage.memory import MemoryAlertStore
from pricewatch.web.app import create_app

load_dotenv()
log = structlog.get_logger()


# ---------------------------
# Utilities
# ---------------------------

def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
    )


def build_store(settings: Settings):
    if settings.store_backend == "memory":
        log.warning("store_memory_backend_not_durable")
        return MemoryAlertStore()
    return RedisAlertStore(Redis.from_url(settings.redis_url, decode_responses=True), key=settings.alerts_key)


def build_notifier():
    """Telegram when a bot token is configured, console otherwise."""
    try:
        tg_cfg = telegram_config_from_env()
    except RuntimeError:
        log.info("telegram_disabled_missing_env")
        return ConsoleNotifier(), None
    log.info("telegram_enabled")
    return TelegramNotifier(tg_cfg), tg_cfg.webhook_secret


# ---------------------------
# Main
# ---------------------------

async def main():
    settings = settings_from_env()
    configure_logging(settings.log_level)

    store = build_store(settings)
    if not await store.ping():
        # not fatal: every cycle retries the store on its own
        log.warning("store_unreachable_at_startup", backend=settings.store_backend)

    lookup = DexScreenerClient(settings.lookup)
    notifier, webhook_secret = build_notifier()

    cycle = MonitoringCycle(store, lookup, notifier, cfg=settings.cycle)
    scheduler = Scheduler(cycle, interval_s=settings.check_interval_s)
    service = AlertService(store, lookup, notifier, scheduler, listing_pacing_s=settings.cycle.pacing_s)
    commands = CommandHandler(service, notifier)

    app = create_app(service, commands, api_token=settings.api_token, webhook_secret=webhook_secret)
    runner = web.AppRunner(app)

    await lookup.start()
    await notifier.start()
    await runner.setup()
    site = web.TCPSite(runner, settings.http_host, settings.http_port)
    await site.start()
    await scheduler.start()
    log.info(
        "pricewatch_started",
        host=settings.http_host,
        port=settings.http_port,
        interval_s=settings.check_interval_s,
        backend=settings.store_backend,
    )

    try:
        await asyncio.Event().wait()
    finally:
        # graceful shutdown to avoid unclosed sessions
        await scheduler.stop()
        await runner.cleanup()
        await notifier.stop()
        await lookup.stop()
        await store.close()
        log.info("pricewatch_stopped")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
