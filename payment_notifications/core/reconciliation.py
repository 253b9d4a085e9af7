"""
Reconciliation engine for verified gateway payment and refund notifications.

Gateways deliver notifications at least once, possibly concurrently on
separate connections and in any order. The engine guarantees that an order
goes from unpaid to paid at most once by delegating the transition to the
store's conditional write (``WHERE payment_status = 'unpaid'``); losing that
race is an ordinary duplicate, not an error.
"""
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from payment_notifications.monitoring.metrics import metrics

from .domain import (
    ExtraKey,
    OrderSnapshot,
    PaymentStatus,
    RefundResult,
    RefundStatus,
    VerifiedPaymentNotification,
    VerifiedRefundNotification,
)
from .events import EventDispatcher, EventKind
from .order_store import OrderStore
from .outcomes import Outcome

logger = structlog.get_logger(__name__)

# Refund states a successful refund notification may still move out of
_REFUND_NOT_SUCCEEDED = (RefundStatus.NONE, RefundStatus.PENDING, RefundStatus.FAILED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationEngine:
    """
    Applies verified notifications to order state exactly once.

    Collaborators are injected once at process start:
    - order_store: keyed reads and conditional writes
    - events: dispatcher for post-commit order events
    - clock: source of ``paid_at`` timestamps
    """

    def __init__(
        self,
        order_store: OrderStore,
        events: Optional[EventDispatcher] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize reconciliation engine.

        Args:
            order_store: Order store
            events: Event dispatcher (defaults to a logging sink)
            clock: Callable returning the current time
        """
        self.order_store = order_store
        self.events = events or EventDispatcher()
        self.clock = clock
        logger.info("reconciliation_engine_initialized")

    async def reconcile_payment(self, notification: VerifiedPaymentNotification) -> Outcome:
        """
        Reconcile a payment notification against the order it names.

        Args:
            notification: Verified payment notification

        Returns:
            Outcome: What happened to the order

        Raises:
            StoreUnavailable: If the order store cannot be reached
        """
        start_time = time.time()
        log = logger.bind(
            order_no=notification.order_no,
            payment_method=notification.payment_method.value,
            trade_status=notification.trade_status,
        )

        outcome = await self._reconcile_payment(notification, log)

        duration = time.time() - start_time
        metrics.record_reconciliation("payment", outcome.value, duration)
        log.info(
            "payment_notification_reconciled",
            outcome=outcome.value,
            duration_seconds=duration,
        )
        return outcome

    async def _reconcile_payment(
        self, notification: VerifiedPaymentNotification, log: structlog.BoundLogger
    ) -> Outcome:
        # Pending or closed trades are neither a failure nor a payment
        if not notification.is_settled:
            return Outcome.IGNORED

        order = await self.order_store.find_by_order_no(notification.order_no)
        if order is None:
            # Possibly replication lag on our side, let the gateway retry
            log.warning("payment_notification_order_not_found")
            return Outcome.NOT_FOUND

        if order.is_paid:
            return Outcome.ALREADY_PAID

        if order.closed:
            log.warning("payment_notification_for_closed_order")
            return Outcome.ORDER_CLOSED

        if (
            notification.amount_paid is not None
            and notification.amount_paid != order.total_amount
        ):
            log.warning(
                "payment_notification_amount_mismatch",
                amount_paid=str(notification.amount_paid),
                total_amount=str(order.total_amount),
            )
            return Outcome.AMOUNT_MISMATCH

        values = {
            "payment_status": PaymentStatus.PAID,
            "paid_at": self.clock(),
            "payment_method": notification.payment_method,
            "payment_no": notification.transaction_id,
        }
        applied = await self.order_store.conditional_update(
            notification.order_no,
            expected={"payment_status": PaymentStatus.UNPAID, "closed": False},
            values=values,
        )
        if not applied:
            return await self._resolve_lost_transition(notification.order_no, log)

        # The write is committed; the event carries exactly what was written
        self.events.publish(EventKind.ORDER_PAID, order.model_copy(update=values))
        return Outcome.NEWLY_PAID

    async def _resolve_lost_transition(
        self, order_no: str, log: structlog.BoundLogger
    ) -> Outcome:
        """Work out who won after our conditional write matched no row."""
        current = await self.order_store.find_by_order_no(order_no)
        if current is None:
            return Outcome.NOT_FOUND
        if current.closed and not current.is_paid:
            log.warning("order_closed_during_reconciliation")
            return Outcome.ORDER_CLOSED
        log.info("order_transition_lost", payment_no=current.payment_no)
        return Outcome.ALREADY_PAID

    async def reconcile_refund(self, notification: VerifiedRefundNotification) -> Outcome:
        """
        Record the terminal result of a refund.

        A refund can only be issued against an existing order, so a missing
        order is reported as REFUND_ORDER_NOT_FOUND rather than a retryable
        NOT_FOUND.

        Args:
            notification: Verified refund notification

        Returns:
            Outcome: REFUND_RECORDED or REFUND_ORDER_NOT_FOUND

        Raises:
            StoreUnavailable: If the order store cannot be reached
        """
        start_time = time.time()
        log = logger.bind(
            order_no=notification.order_no,
            refund_result=notification.refund_result.value,
        )

        order = await self.order_store.find_by_order_no(notification.order_no)
        if order is None:
            log.error("refund_notification_order_not_found")
            outcome = Outcome.REFUND_ORDER_NOT_FOUND
        elif notification.refund_result is RefundResult.SUCCESS:
            outcome = await self._record_refund_success(order, log)
        else:
            outcome = await self._record_refund_failure(notification, log)

        duration = time.time() - start_time
        metrics.record_reconciliation("refund", outcome.value, duration)
        log.info(
            "refund_notification_reconciled",
            outcome=outcome.value,
            duration_seconds=duration,
        )
        return outcome

    async def _record_refund_success(
        self, order: OrderSnapshot, log: structlog.BoundLogger
    ) -> Outcome:
        applied = await self.order_store.conditional_update(
            order.no,
            expected={"refund_status": _REFUND_NOT_SUCCEEDED},
            values={"refund_status": RefundStatus.SUCCESS},
        )
        if applied:
            refunded = order.model_copy(update={"refund_status": RefundStatus.SUCCESS})
            self.events.publish(EventKind.ORDER_REFUNDED, refunded)
        else:
            log.info("refund_success_already_recorded")
        return Outcome.REFUND_RECORDED

    async def _record_refund_failure(
        self, notification: VerifiedRefundNotification, log: structlog.BoundLogger
    ) -> Outcome:
        # A late failure must not undo a refund that already succeeded
        applied = await self.order_store.merge_extra(
            notification.order_no,
            entries={ExtraKey.REFUND_FAILED_CODE: notification.refund_failure_code},
            values={"refund_status": RefundStatus.FAILED},
            expected={"refund_status": _REFUND_NOT_SUCCEEDED},
        )
        if not applied:
            log.warning("refund_failure_ignored_after_success")
        return Outcome.REFUND_RECORDED
