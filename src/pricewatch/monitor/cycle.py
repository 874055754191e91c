# src/pricewatch/monitor/cycle.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from pricewatch.alerts.evaluator import evaluate
from pricewatch.alerts.formatting import format_trigger_message
from pricewatch.errors import LookupFailure, NotificationFailure
from pricewatch.lookup.dexscreener import PriceLookup
from pricewatch.notify.console import Notifier
from pricewatch.storage.alert_store import AlertStore
from pricewatch.utils.pacing import pause
from pricewatch.utils.time import utc_now_s
from pricewatch.utils.types import Alert, CycleFailure, CycleReport, PriceQuote

log = structlog.get_logger("cycle")


@dataclass(slots=True)
class CycleConfig:
    # delay between consecutive group lookups (upstream rate limit budget)
    pacing_s: float = 0.2


def group_by_lookup_key(alerts: list[Alert]) -> dict[str, list[Alert]]:
    """Partition alerts by lookup key, keeping first-seen key order."""
    groups: dict[str, list[Alert]] = {}
    for a in alerts:
        groups.setdefault(a.lookup_key, []).append(a)
    return groups


class MonitoringCycle:
    """
    One full pass over all pending alerts.

    run():
      1) snapshot the store
      2) group alerts by lookup key (one lookup per group)
      3) per group, sequentially: lookup -> evaluate each alert ->
         for every trigger: notify, then delete
      4) pause `pacing_s` before the next group

    Runs are serialized by an instance lock, so the scheduler tick and a
    manual refresh never interleave their read-evaluate-delete sequences.

    Failure handling:
      - LookupFailure: group skipped, alerts untouched
      - NotificationFailure: logged, alert still deleted (at-most-once)
      - evaluator anomaly: alert stays pending
      - StoreUnavailable: propagates; the cycle is aborted
    """
    def __init__(
        self,
        store: AlertStore,
        lookup: PriceLookup,
        notifier: Notifier,
        cfg: Optional[CycleConfig] = None,
    ):
        self.store = store
        self.lookup = lookup
        self.notifier = notifier
        self.cfg = cfg or CycleConfig()
        self._lock = asyncio.Lock()

        self.runs: int = 0
        self.last_run_ts: Optional[float] = None
        self.last_report: Optional[CycleReport] = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self) -> CycleReport:
        async with self._lock:
            report = await self._run_locked()
            self.runs += 1
            self.last_run_ts = utc_now_s()
            self.last_report = report
            return report

    async def _pause(self, seconds: float) -> None:
        await pause(seconds)

    # ---------- core ----------

    async def _run_locked(self) -> CycleReport:
        report = CycleReport()
        alerts = await self.store.list_all()
        if not alerts:
            log.info("cycle_no_alerts")
            return report

        groups = group_by_lookup_key(alerts)
        log.info("cycle_start", alerts=len(alerts), groups=len(groups))

        for i, (key, group) in enumerate(groups.items()):
            if i > 0:
                await self._pause(self.cfg.pacing_s)
            report.groups_checked += 1
            try:
                quote = await self.lookup.fetch(key)
            except LookupFailure as e:
                log.warning("lookup_failed", key=key, err=e.reason, alerts=len(group))
                report.failures.append(CycleFailure(kind="lookup", lookup_key=key, detail=e.reason))
                continue
            await self._process_group(key, group, quote, report)

        log.info(
            "cycle_done",
            triggered=report.triggered_count,
            groups=report.groups_checked,
            failures=len(report.failures),
        )
        return report

    async def _process_group(self, key: str, group: list[Alert], quote: PriceQuote, report: CycleReport) -> None:
        for alert in group:
            ev = evaluate(alert, quote.price_usd)
            if ev.anomaly:
                report.failures.append(
                    CycleFailure(kind="anomaly", lookup_key=key, alert_id=alert.id, detail=ev.anomaly)
                )
                continue
            if not ev.triggered:
                continue

            text = format_trigger_message(alert, quote, ev)
            try:
                await self.notifier.send(alert.recipient, text)
            except NotificationFailure as e:
                log.error("notification_failed", alert_id=alert.id, recipient=alert.recipient, err=e.reason)
                report.failures.append(
                    CycleFailure(kind="notification", lookup_key=key, alert_id=alert.id, detail=e.reason)
                )

            # retire regardless of delivery; a concurrent cancel makes this a no-op
            removed = await self.store.delete(alert.id)
            if removed is None:
                log.info("alert_already_retired", alert_id=alert.id)
            report.triggered_count += 1
            log.info(
                "alert_triggered",
                alert_id=alert.id,
                key=key,
                condition=alert.condition,
                target=alert.target_value,
                price=quote.price_usd,
            )
