"""
Reconciliation outcomes and the reply kind each one maps to.

The gateways retry on anything but their success token, so the mapping below
decides between silently dropping a notification (acking a failure) and an
endless retry loop (failing a success).
"""
from enum import Enum


class Outcome(str, Enum):
    """Result of reconciling one notification."""

    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    ALREADY_PAID = "already_paid"
    NEWLY_PAID = "newly_paid"
    ORDER_CLOSED = "order_closed"
    AMOUNT_MISMATCH = "amount_mismatch"
    REFUND_RECORDED = "refund_recorded"
    REFUND_ORDER_NOT_FOUND = "refund_order_not_found"
    VERIFICATION_FAILED = "verification_failed"
    STORE_UNAVAILABLE = "store_unavailable"


class ReplyKind(str, Enum):
    SUCCESS = "success"
    RETRY = "retry"  # gateway failure ack, gateway will redeliver
    REJECT = "reject"  # protocol-level failure document


_REPLY_KINDS = {
    Outcome.IGNORED: ReplyKind.SUCCESS,
    Outcome.ALREADY_PAID: ReplyKind.SUCCESS,
    Outcome.NEWLY_PAID: ReplyKind.SUCCESS,
    Outcome.REFUND_RECORDED: ReplyKind.SUCCESS,
    Outcome.NOT_FOUND: ReplyKind.RETRY,
    Outcome.STORE_UNAVAILABLE: ReplyKind.RETRY,
    Outcome.REFUND_ORDER_NOT_FOUND: ReplyKind.REJECT,
    Outcome.VERIFICATION_FAILED: ReplyKind.REJECT,
    Outcome.ORDER_CLOSED: ReplyKind.REJECT,
    Outcome.AMOUNT_MISMATCH: ReplyKind.REJECT,
}


def reply_kind(outcome: Outcome) -> ReplyKind:
    """Return the reply kind the gateway must receive for an outcome."""
    return _REPLY_KINDS[outcome]
