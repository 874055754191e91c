from __future__ import annotations

import math
import uuid
from typing import Optional

import structlog

from pricewatch.alerts.formatting import format_cancelled_message, format_created_message
from pricewatch.errors import InvalidAlert, LookupFailure, NotificationFailure
from pricewatch.lookup.dexscreener import PriceLookup
from pricewatch.monitor.cycle import group_by_lookup_key
from pricewatch.monitor.scheduler import Scheduler
from pricewatch.notify.console import Notifier
from pricewatch.storage.alert_store import AlertStore
from pricewatch.utils.pacing import pause
from pricewatch.utils.time import utc_now_ms, utc_now_s
from pricewatch.utils.types import (
    Alert,
    CycleReport,
    DisplayMeta,
    ListedAlert,
    normalize_condition,
)

log = structlog.get_logger("service")


def new_alert_id() -> str:
    # alert_<epoch-ms>_<9 hex chars>
    return f"alert_{utc_now_ms()}_{uuid.uuid4().hex[:9]}"


class AlertService:
    """
    The operations exposed to the outside: create, cancel, list, refresh.
    Transport-agnostic; the web app and the Telegram command handler both
    call into this.
    """
    def __init__(
        self,
        store: AlertStore,
        lookup: PriceLookup,
        notifier: Notifier,
        scheduler: Scheduler,
        listing_pacing_s: float = 0.2,
    ):
        self.store = store
        self.lookup = lookup
        self.notifier = notifier
        self.scheduler = scheduler
        self.listing_pacing_s = listing_pacing_s

    # ---------- creation / cancellation ----------

    async def create_alert(
        self,
        *,
        recipient: str,
        lookup_key: str,
        condition: str,
        target_value: float,
        reference_price: float,
        display: Optional[DisplayMeta] = None,
        notify: bool = True,
    ) -> Alert:
        recipient = str(recipient or "").strip()
        lookup_key = str(lookup_key or "").strip()
        if not recipient:
            raise InvalidAlert("recipient is required")
        if not lookup_key:
            raise InvalidAlert("lookup_key is required")
        try:
            cond = normalize_condition(condition)
            target = float(target_value)
            ref = float(reference_price)
        except (TypeError, ValueError) as e:
            raise InvalidAlert(str(e)) from e
        if not math.isfinite(target):
            raise InvalidAlert("target_value must be finite")
        if not math.isfinite(ref) or ref <= 0.0:
            raise InvalidAlert("reference_price must be a positive number")

        alert = Alert(
            id=new_alert_id(),
            recipient=recipient,
            lookup_key=lookup_key,
            condition=cond,
            target_value=target,
            reference_price=ref,
            created_at=utc_now_s(),
            display=display or DisplayMeta(),
        )
        await self.store.put(alert)
        log.info("alert_created", alert_id=alert.id, recipient=recipient, key=lookup_key, condition=cond)

        if notify:
            await self._notify_best_effort(recipient, format_created_message(alert))
        return alert

    async def cancel_alert(self, alert_id: str, recipient: Optional[str] = None) -> Optional[Alert]:
        """
        Remove `alert_id`. Returns the removed alert, or None if there was nothing
        to cancel. When `recipient` is given the owner gets a confirmation message.
        """
        removed = await self.store.delete(alert_id)
        if removed is None:
            log.info("cancel_not_found", alert_id=alert_id)
            return None
        log.info("alert_cancelled", alert_id=alert_id)
        if recipient:
            await self._notify_best_effort(removed.recipient, format_cancelled_message(removed))
        return removed

    # ---------- listing / refresh ----------

    async def list_alerts(self, recipient: str) -> list[ListedAlert]:
        """
        Recipient's alerts with a fresh price per unique lookup key.
        On lookup failure the stored reference price is returned instead,
        flagged stale=True.
        """
        alerts = await self.store.list_by_recipient(str(recipient))
        out: list[ListedAlert] = []
        for i, (key, group) in enumerate(group_by_lookup_key(alerts).items()):
            if i > 0:
                await pause(self.listing_pacing_s)
            try:
                quote = await self.lookup.fetch(key)
            except LookupFailure as e:
                log.warning("listing_lookup_failed", key=key, err=e.reason)
                out.extend(ListedAlert(alert=a, current_price=a.reference_price, stale=True) for a in group)
                continue
            out.extend(ListedAlert(alert=a, current_price=quote.price_usd) for a in group)
        return out

    async def refresh(self) -> CycleReport:
        return await self.scheduler.run_now()

    # ---------- helpers ----------

    async def _notify_best_effort(self, recipient: str, text: str) -> None:
        try:
            await self.notifier.send(recipient, text)
        except NotificationFailure as e:
            log.warning("confirmation_not_delivered", recipient=recipient, err=e.reason)
