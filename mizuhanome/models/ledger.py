"""LedgerDocument model, one persisted ledger per (variant, partition, mode)."""

from datetime import datetime

from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from mizuhanome.config import jst_now_naive
from mizuhanome.models.database import Base


class LedgerDocument(Base):
    """Whole-document storage for a staking ledger.

    The ledger is rewritten in full on every save; ``document`` holds
    indented JSON so it can be read and edited by hand.
    """

    __tablename__ = "ledgers"

    variant: Mapped[str] = mapped_column(String(32), primary_key=True)
    partition_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    mode: Mapped[str] = mapped_column(String(16), primary_key=True)

    document: Mapped[str] = mapped_column(Text, default="{}")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=jst_now_naive)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=jst_now_naive, onupdate=jst_now_naive
    )
