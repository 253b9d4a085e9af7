"""
Pytest configuration and fixtures.
"""
import os
from decimal import Decimal
from typing import Any, AsyncGenerator, Awaitable, Callable, List, Tuple

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payment_notifications.core.domain import (
    OrderSnapshot,
    PaymentMethod,
    VerifiedPaymentNotification,
)
from payment_notifications.core.events import EventDispatcher, EventKind
from payment_notifications.core.order_store import SqlAlchemyOrderStore
from payment_notifications.core.reconciliation import ReconciliationEngine
from payment_notifications.database.models import Base, Order


class RecordingEventSink:
    """Event sink keeping every published event in memory."""

    def __init__(self) -> None:
        self.published: List[Tuple[EventKind, OrderSnapshot]] = []

    async def publish(self, kind: EventKind, snapshot: OrderSnapshot) -> None:
        self.published.append((kind, snapshot))

    def kinds(self) -> List[EventKind]:
        return [kind for kind, _ in self.published]


class FailingEventSink:
    """Event sink whose subscriber is always down."""

    async def publish(self, kind: EventKind, snapshot: OrderSnapshot) -> None:
        raise ConnectionError("subscriber unavailable")


@pytest_asyncio.fixture
async def session_factory(tmp_path: Any) -> AsyncGenerator[async_sessionmaker[AsyncSession], Any]:
    """Session factory on a fresh file-backed SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def make_order(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[None]]:
    """Insert an order the way the checkout flow would."""

    async def _make_order(no: str, total_amount: str = "99.00", **columns: Any) -> None:
        async with session_factory() as db:
            db.add(Order(no=no, total_amount=Decimal(total_amount), **columns))
            await db.commit()

    return _make_order


@pytest.fixture
def order_store(session_factory: async_sessionmaker[AsyncSession]) -> SqlAlchemyOrderStore:
    return SqlAlchemyOrderStore(session_factory)


@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def events(event_sink: RecordingEventSink) -> EventDispatcher:
    return EventDispatcher(event_sink)


@pytest.fixture
def failing_events() -> EventDispatcher:
    return EventDispatcher(FailingEventSink())


@pytest.fixture
def engine(order_store: SqlAlchemyOrderStore, events: EventDispatcher) -> ReconciliationEngine:
    return ReconciliationEngine(order_store, events)


@pytest.fixture
def payment_notification() -> Callable[..., VerifiedPaymentNotification]:
    """Build a verified Alipay payment notification."""

    def _payment_notification(
        order_no: str = "ORD-1001",
        trade_status: str = "TRADE_SUCCESS",
        transaction_id: str = "TXN-1",
        **overrides: Any,
    ) -> VerifiedPaymentNotification:
        data = {
            "order_no": order_no,
            "trade_status": trade_status,
            "transaction_id": transaction_id,
            "payment_method": PaymentMethod.ALIPAY,
        }
        data.update(overrides)
        return VerifiedPaymentNotification(**data)

    return _payment_notification
