"""SQLAlchemy database models for order payment reconciliation."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite has no BIGINT autoincrement, Postgres gets JSONB for the extension map
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
ExtraJSON = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Order(Base):
    """
    Orders table, restricted to the columns payment reconciliation touches.

    ``no`` is the externally visible order number shared with the gateways.
    Payment columns (``payment_status``, ``paid_at``, ``payment_method``,
    ``payment_no``) are written together, once.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    no: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="unpaid", index=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(16), nullable=True)
    payment_no: Mapped[str | None] = mapped_column(String(64), nullable=True)
    closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    refund_status: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    extra: Mapped[Dict[str, Any]] = mapped_column(ExtraJSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="non_negative_total"),
        CheckConstraint(
            "payment_status IN ('unpaid', 'paid')",
            name="valid_payment_status",
        ),
        CheckConstraint(
            "refund_status IN ('none', 'pending', 'success', 'failed')",
            name="valid_refund_status",
        ),
        CheckConstraint(
            "(payment_status = 'paid' AND paid_at IS NOT NULL) "
            "OR (payment_status = 'unpaid' AND paid_at IS NULL)",
            name="paid_at_matches_status",
        ),
    )

    def __repr__(self) -> str:
        """String representation of Order."""
        return (
            f"<Order(id={self.id}, no={self.no}, "
            f"payment_status={self.payment_status}, refund_status={self.refund_status})>"
        )
