"""
Database package: async PostgreSQL via SQLAlchemy.
"""

from src.db.engine import init_db, close_db, get_async_session, get_session_factory
from src.db.models import CreditBalance, CreditTransaction, Payment, GenerationTask

__all__ = [
    "init_db",
    "close_db",
    "get_async_session",
    "get_session_factory",
    "CreditBalance",
    "CreditTransaction",
    "Payment",
    "GenerationTask",
]
