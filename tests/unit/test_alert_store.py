import pytest

from pricewatch.errors import StoreUnavailable
from pricewatch.storage.alert_store import ALERTS_KEY, RedisAlertStore, encode_alert
from pricewatch.storage.memory import MemoryAlertStore
from tests.helpers.fake_redis import FakeRedis
from tests.helpers.fakes import make_alert


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture(params=["redis", "memory"])
def store(request, fake_redis):
    if request.param == "redis":
        return RedisAlertStore(fake_redis)
    return MemoryAlertStore()


@pytest.mark.asyncio
async def test_put_list_and_overwrite(store):
    await store.put(make_alert("a2", created_at=2.0))
    await store.put(make_alert("a1", created_at=1.0))
    await store.put(make_alert("a1", created_at=1.0, target_value=5.0))

    alerts = await store.list_all()
    assert [a.id for a in alerts] == ["a1", "a2"]
    assert alerts[0].target_value == 5.0


@pytest.mark.asyncio
async def test_delete_returns_record_then_none(store):
    await store.put(make_alert("a1"))
    first = await store.delete("a1")
    second = await store.delete("a1")
    assert first is not None and first.id == "a1"
    assert second is None
    assert await store.list_all() == []


@pytest.mark.asyncio
async def test_delete_unknown_id_is_none(store):
    assert await store.delete("nope") is None


@pytest.mark.asyncio
async def test_list_by_recipient_filters(store):
    await store.put(make_alert("a1", recipient="100"))
    await store.put(make_alert("a2", recipient="200", created_at=2.0))
    await store.put(make_alert("a3", recipient="100", created_at=3.0))
    mine = await store.list_by_recipient("100")
    assert [a.id for a in mine] == ["a1", "a3"]


@pytest.mark.asyncio
async def test_redis_round_trip_preserves_fields(fake_redis):
    s = RedisAlertStore(fake_redis)
    a = make_alert("a1", condition="percent_change", target_value=-10.0, reference_price=50.0)
    await s.put(a)
    (back,) = await s.list_all()
    assert back == a
    assert back.display.token_symbol == "PEPE"


@pytest.mark.asyncio
async def test_redis_uses_one_hash_field_per_alert(fake_redis):
    s = RedisAlertStore(fake_redis, key="k")
    await s.put(make_alert("a1"))
    await s.put(make_alert("a2"))
    assert set(fake_redis.hashes["k"]) == {"a1", "a2"}


@pytest.mark.asyncio
async def test_redis_delete_is_single_transaction(fake_redis):
    s = RedisAlertStore(fake_redis)
    await s.put(make_alert("a1"))
    await s.delete("a1")
    assert fake_redis.executed == [[("hget", ALERTS_KEY, "a1"), ("hdel", ALERTS_KEY, "a1")]]


@pytest.mark.asyncio
async def test_redis_skips_malformed_records(fake_redis):
    fake_redis.hashes[ALERTS_KEY] = {
        "bad": "{not json",
        "a1": encode_alert(make_alert("a1")),
        "partial": '{"id": "partial"}',
    }
    s = RedisAlertStore(fake_redis)
    assert [a.id for a in await s.list_all()] == ["a1"]


@pytest.mark.asyncio
async def test_redis_accepts_bytes_values(fake_redis):
    fake_redis.hashes[ALERTS_KEY] = {b"a1": encode_alert(make_alert("a1")).encode()}
    s = RedisAlertStore(fake_redis)
    assert [a.id for a in await s.list_all()] == ["a1"]


@pytest.mark.asyncio
async def test_redis_errors_become_store_unavailable(fake_redis):
    s = RedisAlertStore(fake_redis)
    fake_redis.down = True
    with pytest.raises(StoreUnavailable):
        await s.put(make_alert("a1"))
    with pytest.raises(StoreUnavailable):
        await s.list_all()
    with pytest.raises(StoreUnavailable):
        await s.delete("a1")
    assert await s.ping() is False
