"""Background poller that settles pending wagers."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from mizuhanome.config import jst_now_naive, settings
from mizuhanome.ledger.operations import ResultFetcher, SettlementStatus, settle_wager
from mizuhanome.ledger.store import LedgerStore
from mizuhanome.ledger.types import LedgerKey

logger = logging.getLogger(__name__)


class SettlementPoller:
    """Polls on a fixed interval, settling the oldest open wager of every ledger.

    Simulation ledgers are settled too: only order placement is live-only,
    results are read the same way in both modes.
    """

    def __init__(
        self,
        store: LedgerStore,
        fetch_result: ResultFetcher,
        interval: Optional[float] = None,
        keys: Optional[list[LedgerKey]] = None,
    ):
        self.store = store
        self.fetch_result = fetch_result
        self.interval = interval if interval is not None else settings.settlement_poll_seconds
        self._keys = keys
        self.running = False
        self.last_check: datetime | None = None
        self.settled_count = 0
        self._task: asyncio.Task | None = None

    def start(self):
        if self.running:
            return
        self.running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("SettlementPoller started")

    def stop(self):
        self.running = False
        if self._task and not self._task.done():
            self._task.cancel()
        logger.info("SettlementPoller stopped")

    def status(self) -> dict:
        return {
            "running": self.running,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "settled_count": self.settled_count,
        }

    async def _poll_loop(self):
        while self.running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"SettlementPoller error: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    async def _watched_keys(self) -> list[LedgerKey]:
        if self._keys is not None:
            return list(self._keys)
        return await self.store.keys()

    async def tick(self) -> int:
        """Run one settlement pass; returns the number of wagers settled."""
        self.last_check = jst_now_naive()
        settled = 0
        for key in await self._watched_keys():
            try:
                result = await settle_wager(self.store, key, self.fetch_result)
            except Exception as e:
                # one broken ledger must not stop the others from settling
                logger.error(f"SettlementPoller: {key} failed: {e}", exc_info=True)
                continue
            if result.status in (SettlementStatus.RESOLVED, SettlementStatus.FORCED):
                settled += 1
        if settled:
            self.settled_count += settled
            logger.info(f"SettlementPoller: settled {settled} wagers this tick")
        return settled
