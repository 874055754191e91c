import pytest

from pricewatch.errors import InvalidAlert
from pricewatch.monitor.cycle import CycleConfig, MonitoringCycle
from pricewatch.monitor.scheduler import Scheduler
from pricewatch.service import AlertService, new_alert_id
from pricewatch.storage.memory import MemoryAlertStore
from pricewatch.utils.types import DisplayMeta
from tests.helpers.fakes import FakeLookup, RecordingNotifier, make_alert


def make_service(prices=None, failing=(), notifier=None):
    store = MemoryAlertStore()
    lookup = FakeLookup(prices=prices, failing=failing)
    notifier = notifier or RecordingNotifier()
    cycle = MonitoringCycle(store, lookup, notifier, cfg=CycleConfig(pacing_s=0.0))
    svc = AlertService(store, lookup, notifier, Scheduler(cycle, interval_s=300), listing_pacing_s=0.0)
    return svc, store, lookup, notifier


async def create(svc, **kw):
    args = dict(
        recipient="100",
        lookup_key="0xpair",
        condition="price_above",
        target_value=100.0,
        reference_price=90.0,
        display=DisplayMeta(token_name="Pepe", token_symbol="PEPE", chain_id="ethereum"),
    )
    args.update(kw)
    return await svc.create_alert(**args)


def test_alert_ids_are_unique():
    ids = {new_alert_id() for _ in range(500)}
    assert len(ids) == 500
    assert all(i.startswith("alert_") for i in ids)


@pytest.mark.asyncio
async def test_create_stores_alert_and_confirms():
    svc, store, _, notifier = make_service()
    alert = await create(svc)
    assert alert.condition == "above"
    assert (await store.list_all()) == [alert]
    assert notifier.sent[0][0] == "100"
    assert "Price Alert Configured" in notifier.sent[0][1]
    assert alert.id in notifier.sent[0][1]


@pytest.mark.asyncio
async def test_create_survives_confirmation_failure():
    svc, store, _, _ = make_service(notifier=RecordingNotifier(fail=True))
    alert = await create(svc)
    assert [a.id for a in await store.list_all()] == [alert.id]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "override",
    [
        {"recipient": ""},
        {"recipient": None},
        {"lookup_key": "  "},
        {"condition": "sideways"},
        {"target_value": "abc"},
        {"target_value": float("inf")},
        {"reference_price": 0},
        {"reference_price": -1},
        {"reference_price": None},
    ],
)
async def test_create_rejects_invalid_input(override):
    svc, store, _, notifier = make_service()
    with pytest.raises(InvalidAlert):
        await create(svc, **override)
    assert await store.list_all() == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_cancel_twice_reports_not_found_second_time():
    svc, store, _, notifier = make_service()
    alert = await create(svc, notify=False)

    first = await svc.cancel_alert(alert.id, recipient="100")
    second = await svc.cancel_alert(alert.id, recipient="100")

    assert first == alert
    assert second is None
    assert len(notifier.sent) == 1
    assert "Alert Canceled" in notifier.sent[0][1]


@pytest.mark.asyncio
async def test_cancel_without_recipient_sends_nothing():
    svc, _, _, notifier = make_service()
    alert = await create(svc, notify=False)
    assert await svc.cancel_alert(alert.id) == alert
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_list_alerts_marks_stale_prices():
    svc, store, lookup, _ = make_service(prices={"LIVE": 2.5}, failing={"DEAD"})
    await store.put(make_alert("a1", lookup_key="LIVE", created_at=1.0))
    await store.put(make_alert("a2", lookup_key="DEAD", reference_price=7.0, created_at=2.0))
    await store.put(make_alert("a3", lookup_key="LIVE", created_at=3.0))
    await store.put(make_alert("other", recipient="999", lookup_key="ELSE", created_at=4.0))

    items = await svc.list_alerts("100")

    by_id = {i.alert.id: i for i in items}
    assert set(by_id) == {"a1", "a2", "a3"}
    assert by_id["a1"].current_price == 2.5 and not by_id["a1"].stale
    assert by_id["a3"].current_price == 2.5 and not by_id["a3"].stale
    assert by_id["a2"].current_price == 7.0 and by_id["a2"].stale
    assert sorted(lookup.calls) == ["DEAD", "LIVE"]


@pytest.mark.asyncio
async def test_refresh_runs_a_cycle():
    svc, _, lookup, notifier = make_service(prices={"0xpair": 150.0})
    await create(svc, notify=False)
    report = await svc.refresh()
    assert report.triggered_count == 1
    assert report.groups_checked == 1
    assert lookup.calls == ["0xpair"]
    assert len(notifier.sent) == 1
