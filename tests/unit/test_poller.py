"""Tests for the settlement poller."""

from unittest.mock import AsyncMock, patch

import pytest

from mizuhanome.betting.poller import SettlementPoller
from mizuhanome.betting.runner import bet_race
from mizuhanome.ledger.operations import PlacementStatus, place_wager
from mizuhanome.ledger.types import Ledger, LedgerKey, Mode, Variant
from mizuhanome.ranking import Candidate

FAVOURITE = [Candidate(key="1-2-3", odds=6.4)]


class TestSettlementPoller:
    @pytest.mark.asyncio
    async def test_tick_settles_live_and_simulation_ledgers(self, store, results):
        live = LedgerKey(Variant.COCOMO, "3t", Mode.LIVE)
        sim = LedgerKey(Variant.COCOMO, "3t", Mode.SIMULATION)
        await place_wager(store, live, "r1", FAVOURITE, "3t")
        await place_wager(store, sim, "r2", FAVOURITE, "3t")
        results.publish("r1", {"odds_3t1-2-3": "640"})
        results.publish("r2", {"odds_3t1-2-3": None})

        poller = SettlementPoller(store, results, interval=60)
        assert await poller.tick() == 2

        assert sorted(results.calls) == ["r1", "r2"]
        assert (await store.load(live)).history == []
        assert (await store.load(sim)).history[0].resolved
        assert poller.status()["settled_count"] == 2
        assert poller.status()["last_check"] is not None

    @pytest.mark.asyncio
    async def test_simulation_bet_does_not_block_partition(self, store, results):
        sim = LedgerKey(Variant.COCOMO, "3t", Mode.SIMULATION)
        provider = AsyncMock()
        first = await bet_race(store, sim, "r1", FAVOURITE, "3t", provider=provider)
        results.publish("r1", {"odds_3t1-2-3": None})

        assert await SettlementPoller(store, results, interval=60).tick() == 1

        second = await bet_race(store, sim, "r2", FAVOURITE, "3t", provider=provider)
        assert first.placed
        assert second.status == PlacementStatus.PLACED
        provider.auto_buy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_results_not_counted(self, store, results):
        live = LedgerKey(Variant.COCOMO, "3t", Mode.LIVE)
        await place_wager(store, live, "r1", FAVOURITE, "3t")

        poller = SettlementPoller(store, results, interval=60)
        with patch("mizuhanome.ledger.operations.jst_now") as now:
            now.return_value.hour = 12
            assert await poller.tick() == 0
        assert poller.settled_count == 0

    @pytest.mark.asyncio
    async def test_broken_ledger_does_not_block_others(self, store, results, db_session):
        from mizuhanome.models.ledger import LedgerDocument

        broken = LedgerKey(Variant.STORE2T, "2t:01", Mode.LIVE)
        good = LedgerKey(Variant.STORE2T, "2t:02", Mode.LIVE)
        db_session.add(LedgerDocument(variant="store2t", partition_key="2t:01", mode="live", document="[]"))
        await db_session.commit()
        await place_wager(store, good, "r1", FAVOURITE, "2t")
        results.publish("r1", {"odds_2t1-2-3": None})

        poller = SettlementPoller(store, results, interval=60, keys=[broken, good])
        assert await poller.tick() == 1
        assert (await store.load(good)).history[0].resolved

    @pytest.mark.asyncio
    async def test_explicit_keys(self, store, results):
        sim = LedgerKey(Variant.WINNERS, "3t", Mode.SIMULATION)
        await store.save(LedgerKey(Variant.WINNERS, "3t", Mode.LIVE), Ledger())
        poller = SettlementPoller(store, results, interval=60, keys=[sim])
        assert await poller._watched_keys() == [sim]

    def test_initial_status(self, store, results):
        poller = SettlementPoller(store, results, interval=5)
        assert poller.status() == {"running": False, "last_check": None, "settled_count": 0}
