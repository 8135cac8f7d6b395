"""Ledger persistence with per-key mutual exclusion.

One document per (variant, partition, mode), always rewritten whole. Callers
that mutate a ledger hold ``locked(key)`` from before ``load`` until after
``save``:

    async with store.locked(key):
        ledger = await store.load(key)
        ...
        await store.save(key, ledger)
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mizuhanome.ledger.errors import LedgerIntegrityError, StorageError
from mizuhanome.ledger.types import Ledger, LedgerKey, Mode, Variant
from mizuhanome.models.ledger import LedgerDocument

logger = logging.getLogger(__name__)


class LedgerStore:
    """Keyed whole-document ledger storage backed by SQLAlchemy."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        if session_factory is None:
            from mizuhanome.models.database import async_session
            session_factory = async_session
        self._session_factory = session_factory
        self._locks: dict[LedgerKey, asyncio.Lock] = {}

    @asynccontextmanager
    async def locked(self, key: LedgerKey) -> AsyncIterator[None]:
        """Hold the lock for ``key``; other keys are unaffected."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield

    async def load(self, key: LedgerKey) -> Ledger:
        """Persisted ledger for ``key``, or an empty one if none exists."""
        try:
            async with self._session_factory() as db:
                row = await db.get(LedgerDocument, (key.variant.value, key.partition, key.mode.value))
                document = row.document if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read ledger {key}: {e}") from e

        if document is None:
            return Ledger()

        try:
            data = json.loads(document)
        except json.JSONDecodeError as e:
            raise LedgerIntegrityError(f"Ledger {key} is not valid JSON: {e}") from e
        try:
            return Ledger.from_dict(data)
        except LedgerIntegrityError as e:
            raise LedgerIntegrityError(f"Ledger {key} is malformed: {e}") from e

    async def save(self, key: LedgerKey, ledger: Ledger) -> None:
        """Overwrite the stored document for ``key``."""
        document = json.dumps(ledger.to_dict(), indent=2, ensure_ascii=False)
        try:
            async with self._session_factory() as db:
                row = await db.get(LedgerDocument, (key.variant.value, key.partition, key.mode.value))
                if row:
                    row.document = document
                else:
                    db.add(LedgerDocument(
                        variant=key.variant.value,
                        partition_key=key.partition,
                        mode=key.mode.value,
                        document=document,
                    ))
                await db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not write ledger {key}: {e}") from e

    async def reset(self, key: LedgerKey) -> None:
        """Replace the ledger for ``key`` with an empty one."""
        async with self.locked(key):
            await self.save(key, Ledger())
        logger.info(f"Ledger {key} reset")

    async def keys(self, mode: Optional[Mode] = None) -> list[LedgerKey]:
        """All persisted ledger keys, optionally limited to one mode."""
        from sqlalchemy import select

        query = select(LedgerDocument.variant, LedgerDocument.partition_key, LedgerDocument.mode)
        if mode is not None:
            query = query.where(LedgerDocument.mode == mode.value)
        try:
            async with self._session_factory() as db:
                rows = (await db.execute(query)).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not list ledgers: {e}") from e
        return [LedgerKey(Variant(v), p, Mode(m)) for v, p, m in rows]
