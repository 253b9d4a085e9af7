"""
Notification handling pipeline: verify, reconcile, acknowledge.

Every call ends in exactly one GatewayReply. Verification failures never
reach the order store, and store outages become a retry reply instead of an
exception.
"""
from typing import Awaitable, Callable, Mapping, Optional

import structlog

from payment_notifications.integrations.verifier import NotificationVerifier
from payment_notifications.monitoring.metrics import metrics

from .acknowledgement import AcknowledgementBuilder, GatewayReply
from .exceptions import StoreUnavailable, VerificationError
from .outcomes import Outcome
from .reconciliation import ReconciliationEngine

logger = structlog.get_logger(__name__)


class NotificationHandler:
    """Runs gateway notifications through verifier, engine and ack builder."""

    def __init__(
        self,
        engine: ReconciliationEngine,
        acknowledgements: Optional[AcknowledgementBuilder] = None,
    ):
        """
        Initialize notification handler.

        Args:
            engine: Reconciliation engine
            acknowledgements: Reply builder
        """
        self.engine = engine
        self.acknowledgements = acknowledgements or AcknowledgementBuilder()

    async def handle_payment(
        self, verifier: NotificationVerifier, fields: Mapping[str, str]
    ) -> GatewayReply:
        """Handle an asynchronous payment notification."""
        return await self._handle(verifier, fields, "payment", self.engine.reconcile_payment)

    async def handle_refund(
        self, verifier: NotificationVerifier, fields: Mapping[str, str]
    ) -> GatewayReply:
        """Handle an asynchronous refund notification."""
        return await self._handle(verifier, fields, "refund", self.engine.reconcile_refund)

    def reject(self, verifier: NotificationVerifier, kind: str, reason: str) -> GatewayReply:
        """Reply to a request whose body could not even be parsed."""
        gateway = verifier.payment_method.value
        metrics.record_notification(gateway, kind)
        logger.warning("notification_rejected", gateway=gateway, kind=kind, error=reason)
        return self._reply(verifier, kind, Outcome.VERIFICATION_FAILED)

    async def _handle(
        self,
        verifier: NotificationVerifier,
        fields: Mapping[str, str],
        kind: str,
        reconcile: Callable[..., Awaitable[Outcome]],
    ) -> GatewayReply:
        gateway = verifier.payment_method.value
        metrics.record_notification(gateway, kind)

        try:
            notification = verifier.verify(fields)
        except VerificationError as e:
            logger.warning(
                "notification_verification_failed", gateway=gateway, kind=kind, error=str(e)
            )
            return self._reply(verifier, kind, Outcome.VERIFICATION_FAILED)

        try:
            outcome = await reconcile(notification)
        except StoreUnavailable as e:
            logger.error(
                "notification_store_unavailable",
                gateway=gateway,
                kind=kind,
                order_no=notification.order_no,
                error=str(e),
            )
            outcome = Outcome.STORE_UNAVAILABLE

        return self._reply(verifier, kind, outcome)

    def _reply(
        self, verifier: NotificationVerifier, kind: str, outcome: Outcome
    ) -> GatewayReply:
        reply = self.acknowledgements.build(verifier.payment_method, outcome)
        metrics.record_reply(verifier.payment_method.value, kind, reply.kind.value)
        return reply
