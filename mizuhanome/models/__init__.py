"""Database models for Mizuhanome."""

from mizuhanome.models.database import Base, async_session, init_db
from mizuhanome.models.ledger import LedgerDocument

__all__ = [
    "Base",
    "async_session",
    "init_db",
    "LedgerDocument",
]
