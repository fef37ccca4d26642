from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from SFOrderBot.order_store import OrderStore
from SFOrderBot.settings import BotSettings

ESIM_CHANNEL_ID = 555000
ESIM_ROLE_ID = 777000
VERIFIED_ROLE_ID = 888000
STAFF_ROLE_ID = 999000


@pytest.fixture
def settings() -> BotSettings:
    return BotSettings(
        bot_token="token",
        db_url="sqlite+aiosqlite://",
        esim_channel_id=ESIM_CHANNEL_ID,
        esim_role_id=ESIM_ROLE_ID,
        verified_role_id=VERIFIED_ROLE_ID,
        ticket_staff_role_ids=[STAFF_ROLE_ID],
    )


@pytest.fixture
async def store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    s = OrderStore(engine)
    await s.create_schema()
    yield s
    await s.close()


async def execute(store: OrderStore, sql: str, params: dict | None = None) -> None:
    async with store.engine.begin() as conn:
        await conn.execute(text(sql), params or {})


@pytest.fixture
def seed(store):
    async def _seed(*, products=(), orders=(), codes=()):
        for pid, name in products:
            await execute(store, "INSERT INTO products (id, name) VALUES (:id, :name)", {"id": pid, "name": name})
        for oid, email, pid, status, created in orders:
            await execute(
                store,
                "INSERT INTO orders (id, customer_email, product_id, status, created_at) "
                "VALUES (:id, :email, :pid, :status, :created)",
                {"id": oid, "email": email, "pid": pid, "status": status, "created": created},
            )
        for code, email, status, expires in codes:
            await execute(
                store,
                "INSERT INTO verification_codes (code, customer_email, status, created_at, expires_at) "
                "VALUES (:code, :email, :status, '2026-01-01 00:00:00', :expires)",
                {"code": code, "email": email, "status": status, "expires": expires},
            )

    return _seed
