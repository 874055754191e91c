# src/pricewatch/storage/alert_store.py
from __future__ import annotations

import json
from typing import Optional, Protocol

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from pricewatch.errors import StoreUnavailable
from pricewatch.utils.types import Alert

log = structlog.get_logger("alert_store")

ALERTS_KEY = "pricewatch:alerts"


class AlertStore(Protocol):
    """
    Keyed id -> Alert mapping. Every operation is atomic on its own.
    Implementations raise StoreUnavailable when the backend cannot be used.
    """
    async def put(self, alert: Alert) -> None: ...
    async def delete(self, alert_id: str) -> Optional[Alert]: ...
    async def list_all(self) -> list[Alert]: ...
    async def list_by_recipient(self, recipient: str) -> list[Alert]: ...
    async def ping(self) -> bool: ...


def encode_alert(alert: Alert) -> str:
    return json.dumps(alert.to_dict(), separators=(",", ":"))


def decode_alert(raw) -> Alert:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    return Alert.from_dict(json.loads(raw))


def snapshot_order(alerts: list[Alert]) -> list[Alert]:
    # creation order, id as tie-break so one snapshot is stable
    return sorted(alerts, key=lambda a: (a.created_at, a.id))


class RedisAlertStore:
    """
    Alerts live in one Redis hash: field = alert id, value = alert JSON.

    Individual HSET/HDEL per record (never a whole-map rewrite), so a put
    or delete only touches its own record. delete() reads and removes inside
    one MULTI/EXEC so the returned record is exactly the one removed.
    """
    def __init__(self, redis: Redis, key: str = ALERTS_KEY):
        self._r = redis
        self.key = key

    async def put(self, alert: Alert) -> None:
        try:
            await self._r.hset(self.key, alert.id, encode_alert(alert))
        except RedisError as e:
            raise StoreUnavailable(f"put {alert.id}: {e}") from e
        log.info("alert_stored", alert_id=alert.id, lookup_key=alert.lookup_key)

    async def delete(self, alert_id: str) -> Optional[Alert]:
        p = self._r.pipeline(transaction=True)
        p.hget(self.key, alert_id)
        p.hdel(self.key, alert_id)
        try:
            raw, removed = await p.execute()
        except RedisError as e:
            raise StoreUnavailable(f"delete {alert_id}: {e}") from e
        if not removed or raw is None:
            return None
        try:
            alert = decode_alert(raw)
        except (ValueError, KeyError, TypeError) as e:
            # the record is gone either way; report it as removed-but-unreadable
            log.warning("alert_decode_failed", alert_id=alert_id, err=str(e))
            return None
        log.info("alert_removed", alert_id=alert_id)
        return alert

    async def list_all(self) -> list[Alert]:
        try:
            data = await self._r.hgetall(self.key)
        except RedisError as e:
            raise StoreUnavailable(f"list: {e}") from e
        out: list[Alert] = []
        for field_id, raw in (data or {}).items():
            try:
                out.append(decode_alert(raw))
            except (ValueError, KeyError, TypeError) as e:
                # skip malformed records
                log.warning("alert_decode_failed", alert_id=str(field_id), err=str(e))
        return snapshot_order(out)

    async def list_by_recipient(self, recipient: str) -> list[Alert]:
        return [a for a in await self.list_all() if a.recipient == recipient]

    async def ping(self) -> bool:
        try:
            return bool(await self._r.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._r.aclose()
