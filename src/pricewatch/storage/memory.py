from __future__ import annotations

import asyncio
from typing import Optional

from pricewatch.storage.alert_store import snapshot_order
from pricewatch.utils.types import Alert


class MemoryAlertStore:
    """
    In-process store for local runs (STORE_BACKEND=memory) and tests.
    Not durable across restarts.
    """
    def __init__(self):
        self._alerts: dict[str, Alert] = {}
        self._lock = asyncio.Lock()

    async def put(self, alert: Alert) -> None:
        async with self._lock:
            self._alerts[alert.id] = alert

    async def delete(self, alert_id: str) -> Optional[Alert]:
        async with self._lock:
            return self._alerts.pop(alert_id, None)

    async def list_all(self) -> list[Alert]:
        async with self._lock:
            return snapshot_order(list(self._alerts.values()))

    async def list_by_recipient(self, recipient: str) -> list[Alert]:
        return [a for a in await self.list_all() if a.recipient == recipient]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
