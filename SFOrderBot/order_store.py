"""
Order database access.

The `orders` and `products` tables belong to the shop backend; this bot only
reads them, except for the pending -> completed/failed transition driven by the
ticket buttons. `verification_codes` holds the one-time codes emailed to buyers.

Every method checks a connection out of the pool for exactly one statement (or
one short transaction) and returns it before the caller resumes.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from SFOrderBot.errors import OrderStoreError
from SFOrderBot.settings import BotSettings
from SFOrderBot.utils import parse_dt_any, utcnow

log = logging.getLogger("sfbot.store")

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)

CODE_PENDING = "pending"
CODE_USED = "used"

# Only used to bootstrap dev/test databases; production tables already exist.
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS products (
        id INTEGER PRIMARY KEY,
        name VARCHAR(255) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id INTEGER PRIMARY KEY,
        customer_email VARCHAR(255) NOT NULL,
        product_id INTEGER NOT NULL,
        status VARCHAR(32) NOT NULL DEFAULT 'pending',
        created_at DATETIME NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS verification_codes (
        code VARCHAR(64) PRIMARY KEY,
        customer_email VARCHAR(255) NOT NULL,
        status VARCHAR(32) NOT NULL DEFAULT 'pending',
        created_at DATETIME NOT NULL,
        expires_at DATETIME NULL,
        discord_user_id VARCHAR(32) NULL,
        verified_at DATETIME NULL
    )
    """,
)


@dataclass(frozen=True)
class Order:
    id: int
    customer_email: str
    product_id: int
    status: str
    created_at: Any = None

    @staticmethod
    def from_row(row: Any) -> "Order":
        return Order(
            id=int(row["id"]),
            customer_email=str(row["customer_email"] or ""),
            product_id=int(row["product_id"]),
            status=str(row["status"] or ""),
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class Product:
    id: int
    name: str


@dataclass(frozen=True)
class VerificationRecord:
    code: str
    customer_email: str
    status: str
    expires_at: Optional[datetime] = None

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        if self.status != CODE_PENDING:
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utcnow())


def database_url(settings: BotSettings) -> str | URL:
    """DB_URL wins; otherwise build a MySQL (aiomysql) URL from the parts."""
    if settings.db_url:
        return settings.db_url
    return URL.create(
        "mysql+aiomysql",
        username=settings.db_user or None,
        password=settings.db_password or None,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
    )


def _insecure_ssl_context() -> ssl.SSLContext:
    # Managed MySQL hosts present certs the container cannot verify.
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _db_timestamp(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S")


class OrderStore:
    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    @classmethod
    def from_settings(cls, settings: BotSettings) -> "OrderStore":
        url = database_url(settings)
        kwargs: dict[str, Any] = {"pool_pre_ping": True}
        if str(url).startswith("mysql"):
            kwargs.update(pool_size=settings.db_pool_size, max_overflow=0, pool_recycle=1800)
            if settings.db_ssl:
                kwargs["connect_args"] = {"ssl": _insecure_ssl_context()}
        return cls(create_async_engine(url, **kwargs))

    async def close(self) -> None:
        await self.engine.dispose()

    async def ping(self) -> None:
        """Raise OrderStoreError unless the database answers `SELECT 1`."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise OrderStoreError(f"database unreachable: {e}") from e

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            for stmt in SCHEMA_STATEMENTS:
                await conn.execute(text(stmt))

    # -----------------------------
    # Orders / products
    # -----------------------------
    async def fetch_pending_orders(self, customer_email: str) -> list[Order]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    text(
                        "SELECT id, customer_email, product_id, status, created_at FROM orders "
                        "WHERE customer_email = :email AND status = :status "
                        "ORDER BY created_at, id"
                    ),
                    {"email": customer_email, "status": STATUS_PENDING},
                )
                rows = result.mappings().all()
        except SQLAlchemyError as e:
            raise OrderStoreError(f"pending order lookup failed for {customer_email!r}: {e}") from e
        return [Order.from_row(r) for r in rows]

    async def get_product(self, product_id: int) -> Product | None:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    text("SELECT id, name FROM products WHERE id = :id"),
                    {"id": int(product_id)},
                )
                row = result.mappings().first()
        except SQLAlchemyError as e:
            raise OrderStoreError(f"product lookup failed for id={product_id}: {e}") from e
        if row is None:
            return None
        return Product(id=int(row["id"]), name=str(row["name"] or ""))

    async def set_order_status(self, order_id: int, status: str) -> bool:
        """Move a pending order to a terminal status.

        Returns False when the order does not exist or is no longer pending.
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"not a terminal order status: {status!r}")
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    text("UPDATE orders SET status = :status WHERE id = :id AND status = :pending"),
                    {"status": status, "id": int(order_id), "pending": STATUS_PENDING},
                )
        except SQLAlchemyError as e:
            raise OrderStoreError(f"status update failed for order {order_id}: {e}") from e
        return int(result.rowcount or 0) == 1

    # -----------------------------
    # Verification codes
    # -----------------------------
    async def get_verification(self, code: str) -> VerificationRecord | None:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    text(
                        "SELECT code, customer_email, status, expires_at FROM verification_codes "
                        "WHERE code = :code"
                    ),
                    {"code": code},
                )
                row = result.mappings().first()
        except SQLAlchemyError as e:
            raise OrderStoreError(f"verification lookup failed: {e}") from e
        if row is None:
            return None
        return VerificationRecord(
            code=str(row["code"]),
            customer_email=str(row["customer_email"] or ""),
            status=str(row["status"] or ""),
            expires_at=parse_dt_any(row["expires_at"]),
        )

    async def consume_verification(self, code: str, *, discord_user_id: int) -> VerificationRecord | None:
        """Claim a pending, unexpired code for a Discord user.

        The UPDATE only matches a still-pending row, so two members racing on the
        same code cannot both succeed. Returns the claimed record or None.
        """
        code = (code or "").strip()
        if not code:
            return None
        record = await self.get_verification(code)
        if record is None or not record.is_usable():
            return None
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    text(
                        "UPDATE verification_codes "
                        "SET status = :used, discord_user_id = :uid, verified_at = :now "
                        "WHERE code = :code AND status = :pending"
                    ),
                    {
                        "used": CODE_USED,
                        "uid": str(int(discord_user_id)),
                        "now": _db_timestamp(utcnow()),
                        "code": code,
                        "pending": CODE_PENDING,
                    },
                )
        except SQLAlchemyError as e:
            raise OrderStoreError(f"verification consume failed: {e}") from e
        if int(result.rowcount or 0) != 1:
            log.info("Verification code already claimed (user=%s)", discord_user_id)
            return None
        return record
