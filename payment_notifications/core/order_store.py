"""
Order store: keyed lookups and conditional writes on the orders table.

Every state transition goes through a single conditional UPDATE (or, for the
extension map merge, one short transaction holding a row lock). The store
never holds a lock across a network round trip, and callers never need an
application-level mutex, so several service instances can share one database.
"""
import asyncio
from enum import Enum
from typing import Any, Collection, Dict, Mapping, Optional, Protocol

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_notifications.database.models import Order

from .domain import OrderSnapshot
from .exceptions import StoreUnavailable

logger = structlog.get_logger(__name__)

# Driver-level connect failures surface as these rather than DBAPI errors
_STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)

# Expected column value: a single value, or a collection of accepted values
Expected = Mapping[str, Any]


class OrderStore(Protocol):
    """Boundary the reconciliation engine relies on."""

    async def find_by_order_no(self, order_no: str) -> Optional[OrderSnapshot]:
        ...

    async def conditional_update(
        self, order_no: str, expected: Expected, values: Mapping[str, Any]
    ) -> bool:
        ...

    async def merge_extra(
        self,
        order_no: str,
        entries: Mapping[str, Any],
        values: Mapping[str, Any],
        expected: Optional[Expected] = None,
    ) -> bool:
        ...


def _plain(value: Any) -> Any:
    """Unwrap enums so drivers only see plain column values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {_plain(k): _plain(v) for k, v in value.items()}
    return value


def _column(name: str) -> Any:
    try:
        return getattr(Order, name)
    except AttributeError:
        raise ValueError(f"Unknown order column: {name}")


def _conditions(order_no: str, expected: Expected) -> list:
    clauses = [Order.no == order_no]
    for name, value in expected.items():
        column = _column(name)
        if isinstance(value, Collection) and not isinstance(value, str):
            clauses.append(column.in_([_plain(v) for v in value]))
        else:
            clauses.append(column == _plain(value))
    return clauses


def _matches(order: Order, expected: Expected) -> bool:
    for name, value in expected.items():
        current = getattr(order, name)
        if isinstance(value, Collection) and not isinstance(value, str):
            if current not in {_plain(v) for v in value}:
                return False
        elif current != _plain(value):
            return False
    return True


class SqlAlchemyOrderStore:
    """
    Order store backed by an async SQLAlchemy session factory.

    Each call opens and closes its own session, so reads never pin a
    transaction open while another request writes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize order store.

        Args:
            session_factory: Factory producing database sessions
        """
        self.session_factory = session_factory

    async def find_by_order_no(self, order_no: str) -> Optional[OrderSnapshot]:
        """
        Look up an order by its external order number.

        Args:
            order_no: Order number shared with the gateway

        Returns:
            Optional[OrderSnapshot]: The order, or None if absent

        Raises:
            StoreUnavailable: If the database cannot be queried
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(Order).where(Order.no == order_no))
                order = result.scalar_one_or_none()
                return OrderSnapshot.model_validate(order) if order is not None else None
        except _STORE_ERRORS as e:
            logger.error("order_lookup_failed", order_no=order_no, error=str(e))
            raise StoreUnavailable(f"Failed to load order {order_no}: {str(e)}") from e

    async def conditional_update(
        self, order_no: str, expected: Expected, values: Mapping[str, Any]
    ) -> bool:
        """
        Atomically update an order only if it is still in the expected state.

        Compiles to a single ``UPDATE orders SET ... WHERE no = :no AND ...``.

        Args:
            order_no: Order number shared with the gateway
            expected: Column values the row must currently hold
            values: Columns to write

        Returns:
            bool: True if the row was updated, False on condition mismatch

        Raises:
            StoreUnavailable: If the database cannot be written
        """
        stmt = (
            update(Order)
            .where(*_conditions(order_no, expected))
            .values(**_plain(dict(values)))
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                await db.commit()
        except _STORE_ERRORS as e:
            logger.error("order_conditional_update_failed", order_no=order_no, error=str(e))
            raise StoreUnavailable(f"Failed to update order {order_no}: {str(e)}") from e

        applied = result.rowcount == 1
        logger.debug(
            "order_conditional_update",
            order_no=order_no,
            applied=applied,
            columns=sorted(values),
        )
        return applied

    async def merge_extra(
        self,
        order_no: str,
        entries: Mapping[str, Any],
        values: Mapping[str, Any],
        expected: Optional[Expected] = None,
    ) -> bool:
        """
        Merge entries into the extension map and write other columns.

        Runs the read-merge-write in one transaction with the row locked
        (``SELECT ... FOR UPDATE``), so unrelated keys written concurrently
        are never clobbered.

        Args:
            order_no: Order number shared with the gateway
            entries: Extension map keys to add or replace
            values: Other columns to write alongside
            expected: Column values the row must currently hold

        Returns:
            bool: True if the row was updated, False if absent or mismatched

        Raises:
            StoreUnavailable: If the database cannot be written
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        select(Order).where(Order.no == order_no).with_for_update()
                    )
                    order = result.scalar_one_or_none()
                    if order is None or not _matches(order, expected or {}):
                        return False

                    extra: Dict[str, Any] = dict(order.extra or {})
                    extra.update(_plain(dict(entries)))
                    order.extra = extra
                    for name, value in values.items():
                        _column(name)
                        setattr(order, name, _plain(value))
        except _STORE_ERRORS as e:
            logger.error("order_extra_merge_failed", order_no=order_no, error=str(e))
            raise StoreUnavailable(f"Failed to update order {order_no}: {str(e)}") from e

        logger.debug("order_extra_merged", order_no=order_no, keys=sorted(entries))
        return True
