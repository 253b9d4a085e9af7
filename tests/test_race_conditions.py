"""
Race condition tests for concurrent notification delivery.

Gateways redeliver notifications on separate connections; only the
conditional write may decide which delivery applies the transition.
"""
import asyncio
from typing import Any, Optional

import pytest

from payment_notifications.core.domain import (
    OrderSnapshot,
    PaymentStatus,
    RefundResult,
    RefundStatus,
    VerifiedRefundNotification,
)
from payment_notifications.core.events import EventKind
from payment_notifications.core.exceptions import StoreUnavailable
from payment_notifications.core.notifications import NotificationHandler
from payment_notifications.core.order_store import SqlAlchemyOrderStore
from payment_notifications.core.outcomes import Outcome
from payment_notifications.core.reconciliation import ReconciliationEngine
from payment_notifications.integrations.verifier import AlipayNotificationVerifier


class StaleReadOrderStore(SqlAlchemyOrderStore):
    """Serves an old snapshot on the first read, as a lagging replica would."""

    def __init__(self, session_factory: Any, stale: OrderSnapshot) -> None:
        super().__init__(session_factory)
        self.stale: Optional[OrderSnapshot] = stale

    async def find_by_order_no(self, order_no: str) -> Optional[OrderSnapshot]:
        if self.stale is not None:
            snapshot, self.stale = self.stale, None
            return snapshot
        return await super().find_by_order_no(order_no)


class ReadFailsAfterWriteOrderStore(SqlAlchemyOrderStore):
    """Loses the connection on the first read following a committed write."""

    def __init__(self, session_factory: Any) -> None:
        super().__init__(session_factory)
        self.fail_next_read = False

    async def conditional_update(self, *args: Any, **kwargs: Any) -> bool:
        applied = await super().conditional_update(*args, **kwargs)
        self.fail_next_read = applied
        return applied

    async def find_by_order_no(self, order_no: str) -> Optional[OrderSnapshot]:
        if self.fail_next_read:
            self.fail_next_read = False
            raise StoreUnavailable("connection reset")
        return await super().find_by_order_no(order_no)


class TestRaceConditions:
    """Test suite for race condition scenarios."""

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_notifications_pay_order_once(
        self, engine: Any, make_order: Any, order_store: Any, events: Any, event_sink: Any,
        payment_notification: Any,
    ) -> None:
        """Concurrent deliveries produce exactly one NEWLY_PAID and one event."""
        await make_order("ORD-1001")

        results = await asyncio.gather(
            *[engine.reconcile_payment(payment_notification()) for _ in range(5)]
        )
        await events.drain()

        assert results.count(Outcome.NEWLY_PAID) == 1
        assert results.count(Outcome.ALREADY_PAID) == 4
        assert event_sink.kinds() == [EventKind.ORDER_PAID]
        order = await order_store.find_by_order_no("ORD-1001")
        assert order.payment_status is PaymentStatus.PAID

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_notifications_with_different_references(
        self, engine: Any, make_order: Any, order_store: Any, payment_notification: Any
    ) -> None:
        """Whichever delivery wins, the stored reference is the winner's."""
        await make_order("ORD-1001")

        results = await asyncio.gather(
            engine.reconcile_payment(payment_notification(transaction_id="TXN-A")),
            engine.reconcile_payment(payment_notification(transaction_id="TXN-B")),
        )

        assert sorted(r.value for r in results) == ["already_paid", "newly_paid"]
        winner = "TXN-A" if results[0] is Outcome.NEWLY_PAID else "TXN-B"
        order = await order_store.find_by_order_no("ORD-1001")
        assert order.payment_no == winner

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_lost_conditional_write_is_already_paid(
        self, engine: Any, session_factory: Any, make_order: Any, order_store: Any,
        events: Any, event_sink: Any, payment_notification: Any,
    ) -> None:
        """The second delivery read the order as unpaid; its write matches no row."""
        await make_order("ORD-1001")
        unpaid = await order_store.find_by_order_no("ORD-1001")

        first = await engine.reconcile_payment(payment_notification(transaction_id="TXN-1"))
        lagging = ReconciliationEngine(StaleReadOrderStore(session_factory, unpaid), events)
        second = await lagging.reconcile_payment(payment_notification(transaction_id="TXN-2"))
        await events.drain()

        assert first is Outcome.NEWLY_PAID
        assert second is Outcome.ALREADY_PAID
        assert event_sink.kinds() == [EventKind.ORDER_PAID]
        order = await order_store.find_by_order_no("ORD-1001")
        assert order.payment_no == "TXN-1"

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_order_closed_between_read_and_write(
        self, session_factory: Any, make_order: Any, order_store: Any, events: Any,
        event_sink: Any, payment_notification: Any,
    ) -> None:
        """The expiry process closing the order first wins over a late payment."""
        await make_order("ORD-1001")
        open_order = await order_store.find_by_order_no("ORD-1001")
        closed = await order_store.conditional_update(
            "ORD-1001", expected={"payment_status": "unpaid"}, values={"closed": True}
        )
        assert closed

        lagging = ReconciliationEngine(StaleReadOrderStore(session_factory, open_order), events)
        outcome = await lagging.reconcile_payment(payment_notification())
        await events.drain()

        assert outcome is Outcome.ORDER_CLOSED
        assert event_sink.published == []
        order = await order_store.find_by_order_no("ORD-1001")
        assert order.payment_status is PaymentStatus.UNPAID
        assert order.closed is True

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_paid_event_survives_outage_after_commit(
        self, session_factory: Any, make_order: Any, order_store: Any, events: Any,
        event_sink: Any,
    ) -> None:
        """A committed payment is acknowledged and announced even if the store then drops."""
        await make_order("ORD-1001")
        store = ReadFailsAfterWriteOrderStore(session_factory)
        handler = NotificationHandler(ReconciliationEngine(store, events))
        verifier = AlipayNotificationVerifier(lambda fields: True)
        fields = {
            "out_trade_no": "ORD-1001",
            "trade_no": "TXN-1",
            "trade_status": "TRADE_SUCCESS",
            "total_amount": "99.00",
        }

        first = await handler.handle_payment(verifier, fields)
        during_outage = await handler.handle_payment(verifier, fields)
        after_outage = await handler.handle_payment(verifier, fields)
        await events.drain()

        assert first.outcome is Outcome.NEWLY_PAID
        assert first.status_code == 200
        assert during_outage.outcome is Outcome.STORE_UNAVAILABLE
        assert after_outage.outcome is Outcome.ALREADY_PAID
        assert event_sink.kinds() == [EventKind.ORDER_PAID]
        published = event_sink.published[0][1]
        assert published.is_paid
        assert published.payment_no == "TXN-1"
        order = await order_store.find_by_order_no("ORD-1001")
        assert order.payment_status is PaymentStatus.PAID

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_refunded_event_survives_outage_after_commit(
        self, session_factory: Any, make_order: Any, events: Any, event_sink: Any,
    ) -> None:
        await make_order("ORD-1001", refund_status="pending")
        engine = ReconciliationEngine(ReadFailsAfterWriteOrderStore(session_factory), events)
        notification = VerifiedRefundNotification(
            order_no="ORD-1001", refund_result=RefundResult.SUCCESS
        )

        outcome = await engine.reconcile_refund(notification)
        await events.drain()

        assert outcome is Outcome.REFUND_RECORDED
        assert event_sink.kinds() == [EventKind.ORDER_REFUNDED]
        assert event_sink.published[0][1].refund_status is RefundStatus.SUCCESS
