"""Service test fixtures - async DB, codec, audit double, seeded products, API client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db and get_audit_sink overridden for route tests
    - db_manager patched so code that opens its own sessions hits the test DB
    - The payload codec uses the fixed test key from the environment

Design Decisions:
    - SQLite in-memory: fast, no external dependency; row locks are replaced
      by the in-process claim guard, so concurrent-reservation tests use a
      file database (separate connections) instead
    - RecordingAuditSink instead of the SQL sink: assertions on audit events
      without reading the audit table, and failures can be injected
"""

import os
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

import stockroom.infrastructure.database as db_module
import stockroom.infrastructure.payload_codec as codec_module
from stockroom.api.dependencies import get_audit_sink
from stockroom.config import Settings
from stockroom.db.base import Base
from stockroom.infrastructure.database import DatabaseSessionManager, get_db
from stockroom.infrastructure.payload_codec import PayloadCodec, content_hash
from stockroom.core.item_payload import mask_preview
from stockroom.main import app
from stockroom.models.inventory_item import InventoryItem
from stockroom.models.product import Product


class RecordingAuditSink:
    """AuditSink double: keeps events in memory, can be told to fail."""

    def __init__(self):
        self.events: list[dict] = []
        self.fail = False

    async def log(self, actor_id, action, target, metadata=None, message=None):
        if self.fail:
            raise RuntimeError("audit store unavailable")
        self.events.append({
            "actor_id": actor_id,
            "action": action,
            "target": target,
            "metadata": metadata,
            "message": message,
        })

    def actions(self) -> list[str]:
        return [e["action"] for e in self.events]


async def _create_engine(url: str):
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest.fixture
async def test_engine():
    engine = await _create_engine("sqlite+aiosqlite:///:memory:")
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def file_session_factory(tmp_path):
    """File-backed SQLite: every session gets its own connection."""
    engine = await _create_engine(f"sqlite+aiosqlite:///{tmp_path / 'stockroom.db'}")
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        inventory_encryption_key=os.environ["INVENTORY_ENCRYPTION_KEY"],
        scheduler_enabled=False,
    )


@pytest.fixture
def codec():
    return PayloadCodec.from_hex(os.environ["INVENTORY_ENCRYPTION_KEY"])


@pytest.fixture
def audit():
    return RecordingAuditSink()


@pytest.fixture
def make_product(test_db):
    """Factory: insert a product row with sensible defaults."""
    async def _make(**overrides) -> Product:
        slug = overrides.pop("slug", f"product-{uuid4().hex[:8]}")
        product = Product(
            title=overrides.pop("title", "Test Product"),
            slug=slug,
            source_type=overrides.pop("source_type", "custom"),
            delivery_type=overrides.pop("delivery_type", "key"),
            **overrides,
        )
        test_db.add(product)
        await test_db.commit()
        await test_db.refresh(product)
        return product
    return _make


@pytest.fixture
def make_item(test_db, codec):
    """Factory: insert an item row directly, bypassing intake checks.

    Does not touch the product counters; tests that care set them explicitly.
    """
    async def _make(product: Product, key: str | None = None, **overrides) -> InventoryItem:
        payload = overrides.pop("payload", None) or {
            "type": "key", "key": key or f"KEY-{uuid4().hex.upper()}",
        }
        sealed = codec.encrypt(payload)
        item = InventoryItem(
            product_id=product.id,
            delivery_type=payload["type"],
            payload_ciphertext=sealed.ciphertext,
            payload_nonce=sealed.nonce,
            payload_tag=sealed.tag,
            content_hash=content_hash(payload),
            masked_preview=mask_preview(payload),
            status=overrides.pop("status", "available"),
            uploaded_at=overrides.pop("uploaded_at", datetime.now(timezone.utc)),
            **overrides,
        )
        test_db.add(item)
        await test_db.commit()
        await test_db.refresh(item)
        return item
    return _make


@pytest.fixture
async def client(test_engine, test_session_factory, audit, codec):
    """FastAPI test client with DB, audit sink and codec wired to the test doubles."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_sink] = lambda: audit

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    original_codec = codec_module.codec
    codec_module.codec = codec

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
    codec_module.codec = original_codec
