from __future__ import annotations

import hmac
from typing import Optional

import structlog
from aiohttp import web

from pricewatch.bot.commands import CommandHandler
from pricewatch.errors import InvalidAlert, PriceWatchError, StoreUnavailable
from pricewatch.service import AlertService
from pricewatch.utils.types import DisplayMeta, ListedAlert

log = structlog.get_logger("web")

SERVICE_KEY = web.AppKey("service", AlertService)
COMMANDS_KEY = web.AppKey("commands", CommandHandler)
SETTINGS_KEY = web.AppKey("web_settings", dict)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _listed_to_dict(item: ListedAlert) -> dict:
    d = item.alert.to_dict()
    d["current_price"] = item.current_price
    d["stale"] = item.stale
    return d


def _authorized(request: web.Request) -> bool:
    token = request.app[SETTINGS_KEY].get("api_token")
    if not token:
        return True
    got = request.headers.get("Authorization", "")
    return hmac.compare_digest(got.encode(), f"Bearer {token}".encode())


def _require_auth(request: web.Request) -> None:
    if not _authorized(request):
        raise web.HTTPUnauthorized(
            text='{"error": "unauthorized"}', content_type="application/json"
        )


# ---------------------------- handlers ---------------------------- #

async def health(request: web.Request) -> web.Response:
    svc = request.app[SERVICE_KEY]
    store_ok = await svc.store.ping()
    scheduler_ok = svc.scheduler.healthy()
    cycle = svc.scheduler.cycle
    ok = store_ok and scheduler_ok
    body = {
        "status": "ok" if ok else "degraded",
        "service": "pricewatch",
        "store": store_ok,
        "scheduler": scheduler_ok,
        "cycles": cycle.runs,
        "last_cycle_ts": cycle.last_run_ts,
        "last_report": cycle.last_report.to_dict() if cycle.last_report else None,
    }
    return web.json_response(body, status=200 if ok else 503)


async def create_alert(request: web.Request) -> web.Response:
    _require_auth(request)
    try:
        body = await request.json()
    except ValueError:
        return web.json_response({"error": "invalid json"}, status=400)
    if not isinstance(body, dict):
        return web.json_response({"error": "expected a json object"}, status=400)

    disp = body.get("display") or {}
    if not isinstance(disp, dict):
        return web.json_response({"error": "display must be a json object"}, status=400)
    svc = request.app[SERVICE_KEY]
    try:
        alert = await svc.create_alert(
            recipient=body.get("recipient"),
            lookup_key=body.get("lookup_key"),
            condition=body.get("condition"),
            target_value=body.get("target_value"),
            reference_price=body.get("reference_price"),
            display=DisplayMeta(
                token_name=str(disp.get("token_name", "")),
                token_symbol=str(disp.get("token_symbol", "")),
                chain_id=str(disp.get("chain_id", "")),
                token_address=str(disp.get("token_address", "")),
            ),
        )
    except InvalidAlert as e:
        return web.json_response({"error": str(e)}, status=400)
    except StoreUnavailable as e:
        log.error("create_store_unavailable", err=str(e))
        return web.json_response({"error": "store unavailable"}, status=503)
    return web.json_response(alert.to_dict(), status=201)


async def cancel_alert(request: web.Request) -> web.Response:
    _require_auth(request)
    alert_id = request.match_info["alert_id"]
    recipient = request.query.get("recipient")
    try:
        removed = await request.app[SERVICE_KEY].cancel_alert(alert_id, recipient=recipient)
    except StoreUnavailable as e:
        log.error("cancel_store_unavailable", err=str(e))
        return web.json_response({"error": "store unavailable"}, status=503)
    if removed is None:
        return web.json_response({"status": "not_found", "id": alert_id}, status=404)
    return web.json_response({"status": "cancelled", "alert": removed.to_dict()})


async def list_alerts(request: web.Request) -> web.Response:
    _require_auth(request)
    recipient = request.query.get("recipient")
    if not recipient:
        return web.json_response({"error": "recipient is required"}, status=400)
    try:
        items = await request.app[SERVICE_KEY].list_alerts(recipient)
    except StoreUnavailable as e:
        log.error("list_store_unavailable", err=str(e))
        return web.json_response({"error": "store unavailable"}, status=503)
    return web.json_response({"recipient": recipient, "alerts": [_listed_to_dict(i) for i in items]})


async def refresh(request: web.Request) -> web.Response:
    _require_auth(request)
    try:
        report = await request.app[SERVICE_KEY].refresh()
    except StoreUnavailable as e:
        log.error("refresh_store_unavailable", err=str(e))
        return web.json_response({"error": "store unavailable"}, status=503)
    return web.json_response(report.to_dict())


async def telegram_webhook(request: web.Request) -> web.Response:
    secret = request.app[SETTINGS_KEY].get("webhook_secret")
    if secret and not hmac.compare_digest(request.headers.get(SECRET_HEADER, "").encode(), secret.encode()):
        return web.json_response({"error": "forbidden"}, status=403)
    try:
        update = await request.json()
    except ValueError:
        return web.json_response({"error": "invalid json"}, status=400)
    if isinstance(update, dict):
        try:
            await request.app[COMMANDS_KEY].handle_update(update)
        except PriceWatchError as e:
            # acknowledge anyway so Telegram doesn't redeliver the update
            log.error("webhook_command_failed", err=str(e))
    return web.json_response({"ok": True})


# ---------------------------- factory ---------------------------- #

def create_app(
    service: AlertService,
    commands: CommandHandler,
    *,
    api_token: Optional[str] = None,
    webhook_secret: Optional[str] = None,
) -> web.Application:
    app = web.Application()
    app[SERVICE_KEY] = service
    app[COMMANDS_KEY] = commands
    app[SETTINGS_KEY] = {"api_token": api_token, "webhook_secret": webhook_secret}
    app.router.add_get("/health", health)
    app.router.add_post("/alerts", create_alert)
    app.router.add_get("/alerts", list_alerts)
    app.router.add_delete("/alerts/{alert_id}", cancel_alert)
    app.router.add_post("/refresh", refresh)
    app.router.add_post("/telegram-webhook", telegram_webhook)
    return app
