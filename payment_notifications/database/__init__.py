"""Database package for payment notifications."""
from .connection import close_db, get_engine, get_session_factory, init_db
from .models import Base, Order

__all__ = [
    "Base",
    "Order",
    "close_db",
    "get_engine",
    "get_session_factory",
    "init_db",
]
