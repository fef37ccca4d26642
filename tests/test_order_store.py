import pytest

from SFOrderBot.errors import OrderStoreError
from SFOrderBot.order_store import OrderStore, database_url
from SFOrderBot.settings import BotSettings

from conftest import execute


async def test_fetch_pending_orders_filters_by_email_and_status(store, seed):
    await seed(
        products=[(1, "eSIM 10GB")],
        orders=[
            (11, "a@example.com", 1, "pending", "2026-01-02 10:00:00"),
            (10, "a@example.com", 1, "pending", "2026-01-01 10:00:00"),
            (12, "a@example.com", 1, "completed", "2026-01-01 09:00:00"),
            (13, "b@example.com", 1, "pending", "2026-01-01 08:00:00"),
        ],
    )
    orders = await store.fetch_pending_orders("a@example.com")
    assert [o.id for o in orders] == [10, 11]
    assert all(o.status == "pending" for o in orders)


async def test_fetch_pending_orders_none(store):
    assert await store.fetch_pending_orders("nobody@example.com") == []


async def test_get_product(store, seed):
    await seed(products=[(3, "Travel eSIM")])
    product = await store.get_product(3)
    assert product is not None and product.name == "Travel eSIM"
    assert await store.get_product(404) is None


async def test_set_order_status_only_moves_pending_orders(store, seed):
    await seed(products=[(1, "x")], orders=[(20, "a@example.com", 1, "pending", "2026-01-01 00:00:00")])
    assert await store.set_order_status(20, "completed") is True
    assert await store.set_order_status(20, "failed") is False
    assert await store.fetch_pending_orders("a@example.com") == []


async def test_set_order_status_rejects_non_terminal(store):
    with pytest.raises(ValueError):
        await store.set_order_status(1, "pending")


async def test_consume_verification_once(store, seed):
    await seed(codes=[("CODE1", "a@example.com", "pending", None)])
    record = await store.consume_verification("CODE1", discord_user_id=42)
    assert record is not None and record.customer_email == "a@example.com"
    assert await store.consume_verification("CODE1", discord_user_id=43) is None
    stored = await store.get_verification("CODE1")
    assert stored.status == "used"


async def test_consume_verification_rejects_expired_and_unknown(store, seed):
    await seed(codes=[("OLD", "a@example.com", "pending", "2020-01-01 00:00:00")])
    assert await store.consume_verification("OLD", discord_user_id=1) is None
    assert await store.consume_verification("MISSING", discord_user_id=1) is None
    assert await store.consume_verification("   ", discord_user_id=1) is None


async def test_store_wraps_driver_errors(store):
    await store.ping()
    await execute(store, "DROP TABLE orders")
    with pytest.raises(OrderStoreError):
        await store.fetch_pending_orders("a@example.com")


def test_database_url_prefers_explicit_url():
    assert database_url(BotSettings(db_url="sqlite+aiosqlite://")) == "sqlite+aiosqlite://"


def test_database_url_builds_mysql_url():
    url = database_url(
        BotSettings(db_host="db.internal", db_user="bot", db_password="pw", db_name="shop", db_port=3307)
    )
    assert url.drivername == "mysql+aiomysql"
    assert (url.host, url.port, url.database, url.username) == ("db.internal", 3307, "shop", "bot")


def test_from_settings_uses_bounded_pool_for_mysql():
    store = OrderStore.from_settings(BotSettings(db_host="h", db_name="n", db_user="u", db_password="p", db_pool_size=4))
    assert store.engine.sync_engine.pool.size() == 4
