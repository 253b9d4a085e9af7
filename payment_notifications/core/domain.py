"""
Domain types shared by the verifier, the order store and the engine.

Snapshots and notifications are immutable: the engine never mutates what it
reads, it asks the store for a conditional write and re-reads.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CENT = Decimal("0.01")


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class RefundStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """Payment gateways, doubling as the order's recorded payment method."""

    ALIPAY = "alipay"
    WECHAT = "wechat"


class RefundResult(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ExtraKey(str, Enum):
    """Recognized keys of the order extension map."""

    REFUND_REASON = "refund_reason"
    REFUND_DISAGREE_REASON = "refund_disagree_reason"
    REFUND_FAILED_CODE = "refund_failed_code"


# Trade statuses meaning the funds have settled, per gateway.
# Alipay: https://docs.open.alipay.com/59/103672
SETTLED_TRADE_STATUSES: Dict[PaymentMethod, frozenset[str]] = {
    PaymentMethod.ALIPAY: frozenset({"TRADE_SUCCESS", "TRADE_FINISHED"}),
    PaymentMethod.WECHAT: frozenset({"SUCCESS"}),
}

# Gateway amount field divisor to get major currency units
MINOR_UNIT_SCALE: Dict[PaymentMethod, int] = {
    PaymentMethod.ALIPAY: 1,  # total_amount, yuan
    PaymentMethod.WECHAT: 100,  # total_fee, fen
}


def to_major_units(raw_amount: Any, method: PaymentMethod) -> Decimal:
    """
    Convert a gateway amount field to a major-unit Decimal.

    Raises:
        ValueError: If the amount is not a number
    """
    try:
        amount = Decimal(str(raw_amount))
    except ArithmeticError as e:
        raise ValueError(f"Invalid amount {raw_amount!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid amount {raw_amount!r}")
    return (amount / MINOR_UNIT_SCALE[method]).quantize(CENT, rounding=ROUND_HALF_UP)


class OrderSnapshot(BaseModel):
    """Read-only view of an order row."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    no: str
    total_amount: Decimal
    payment_status: PaymentStatus
    paid_at: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    payment_no: Optional[str] = None
    closed: bool = False
    refund_status: RefundStatus = RefundStatus.NONE
    extra: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status is PaymentStatus.PAID

    def event_payload(self) -> Dict[str, Any]:
        """JSON-safe payload published with order events."""
        return self.model_dump(mode="json")


class VerifiedPaymentNotification(BaseModel):
    """A payment notification that already passed gateway verification."""

    model_config = ConfigDict(frozen=True)

    order_no: str = Field(..., min_length=1)
    trade_status: str
    transaction_id: Optional[str] = None
    payment_method: PaymentMethod
    amount_paid: Optional[Decimal] = None

    @field_validator("amount_paid")
    @classmethod
    def quantize_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return None if v is None else v.quantize(CENT, rounding=ROUND_HALF_UP)

    @property
    def is_settled(self) -> bool:
        return self.trade_status in SETTLED_TRADE_STATUSES[self.payment_method]


class VerifiedRefundNotification(BaseModel):
    """A refund notification that already passed gateway verification."""

    model_config = ConfigDict(frozen=True)

    order_no: str = Field(..., min_length=1)
    refund_result: RefundResult
    refund_failure_code: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.WECHAT
