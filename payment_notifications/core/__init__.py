"""Core payment notification reconciliation logic."""
from .acknowledgement import AcknowledgementBuilder, GatewayReply
from .events import EventDispatcher, EventKind, LoggingEventSink, RedisStreamEventSink
from .exceptions import ReconciliationError, StoreUnavailable, VerificationError
from .order_store import OrderStore, SqlAlchemyOrderStore
from .outcomes import Outcome, ReplyKind
from .reconciliation import ReconciliationEngine

__all__ = [
    "AcknowledgementBuilder",
    "EventDispatcher",
    "EventKind",
    "GatewayReply",
    "LoggingEventSink",
    "OrderStore",
    "Outcome",
    "ReconciliationEngine",
    "ReconciliationError",
    "RedisStreamEventSink",
    "ReplyKind",
    "SqlAlchemyOrderStore",
    "StoreUnavailable",
    "VerificationError",
]
