"""Tests for ledger persistence, document validation and locking."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from mizuhanome.ledger.errors import LedgerIntegrityError, StorageError
from mizuhanome.ledger.operations import PlacementStatus, place_wager
from mizuhanome.ledger.progression import SimpleRecoveryRule
from mizuhanome.ledger.types import Ledger, LedgerKey, Mode, Selection, Variant, WagerRecord
from mizuhanome.models.ledger import LedgerDocument
from mizuhanome.ranking import Candidate

KEY = LedgerKey(Variant.COCOMO, "3t", Mode.LIVE)
CANDIDATES = [Candidate(key="1-2-3", odds=3.2, probability=0.13)]


def _sample_ledger() -> Ledger:
    return Ledger(
        history=[
            WagerRecord(
                race_id="202610190101",
                ticket_type="3t",
                selections=[Selection("1-2-3", 200, None), Selection("1-3-2", 300, 4.25)],
                race_date="2026-10-19",
                unit=2,
                resolved=True,
            ),
            WagerRecord(
                race_id="202610190102",
                ticket_type="3t",
                selections=[Selection("2-1-3", 500)],
            ),
        ],
        loss_units=[1, 2],
        aggressive=True,
    )


class TestLedgerDocument:
    """Validation when decoding persisted documents."""

    def test_dict_round_trip(self):
        ledger = _sample_ledger()
        assert Ledger.from_dict(json.loads(json.dumps(ledger.to_dict()))) == ledger

    def test_record_multiplier_is_best_payout(self):
        record = _sample_ledger().history[0]
        assert record.realized_multiplier == 4.25
        assert record.total_stake == 500

    def test_missing_field(self):
        data = _sample_ledger().to_dict()
        del data["loss_units"]
        with pytest.raises(LedgerIntegrityError, match="loss_units"):
            Ledger.from_dict(data)

    def test_wrong_type(self):
        data = _sample_ledger().to_dict()
        data["history"][0]["selections"][0]["stake"] = "200"
        with pytest.raises(LedgerIntegrityError):
            Ledger.from_dict(data)

    def test_bool_is_not_a_stake(self):
        data = _sample_ledger().to_dict()
        data["history"][0]["selections"][0]["stake"] = True
        with pytest.raises(LedgerIntegrityError):
            Ledger.from_dict(data)

    def test_negative_multiplier(self):
        data = _sample_ledger().to_dict()
        data["history"][0]["selections"][1]["realized_multiplier"] = -1
        with pytest.raises(LedgerIntegrityError):
            Ledger.from_dict(data)

    def test_unresolved_with_multiplier(self):
        data = _sample_ledger().to_dict()
        data["history"][1]["selections"][0]["realized_multiplier"] = 2.0
        with pytest.raises(LedgerIntegrityError, match="unresolved"):
            Ledger.from_dict(data)

    def test_two_unresolved_records(self):
        data = _sample_ledger().to_dict()
        data["history"][0]["resolved"] = False
        data["history"][0]["selections"][1]["realized_multiplier"] = None
        with pytest.raises(LedgerIntegrityError, match="more than one"):
            Ledger.from_dict(data)

    def test_not_an_object(self):
        with pytest.raises(LedgerIntegrityError):
            Ledger.from_dict([])


class TestLedgerStore:
    @pytest.mark.asyncio
    async def test_load_missing_returns_empty(self, store):
        assert await store.load(KEY) == Ledger()

    @pytest.mark.asyncio
    async def test_save_then_load(self, store):
        ledger = _sample_ledger()
        await store.save(KEY, ledger)
        assert await store.load(KEY) == ledger

    @pytest.mark.asyncio
    async def test_save_overwrites(self, store):
        await store.save(KEY, _sample_ledger())
        await store.save(KEY, Ledger(loss_units=[4]))
        assert await store.load(KEY) == Ledger(loss_units=[4])

    @pytest.mark.asyncio
    async def test_document_is_readable_json(self, store, db_session):
        await store.save(KEY, _sample_ledger())
        row = await db_session.get(LedgerDocument, ("cocomo", "3t", "live"))
        assert "\n  " in row.document
        assert json.loads(row.document)["loss_units"] == [1, 2]

    @pytest.mark.asyncio
    async def test_modes_are_separate(self, store):
        sim_key = LedgerKey(Variant.COCOMO, "3t", Mode.SIMULATION)
        await store.save(sim_key, _sample_ledger())
        assert await store.load(KEY) == Ledger()
        assert await store.load(sim_key) == _sample_ledger()

    @pytest.mark.asyncio
    async def test_partitions_are_separate(self, store):
        other = LedgerKey(Variant.STORE2T, "2t:11", Mode.LIVE)
        await store.save(other, _sample_ledger())
        assert await store.load(LedgerKey(Variant.STORE2T, "2t:12", Mode.LIVE)) == Ledger()

    @pytest.mark.asyncio
    async def test_reset(self, store):
        await store.save(KEY, _sample_ledger())
        await store.reset(KEY)
        assert await store.load(KEY) == Ledger()

    @pytest.mark.asyncio
    async def test_keys(self, store):
        sim_key = LedgerKey(Variant.WINNERS, "3t", Mode.SIMULATION)
        await store.save(KEY, Ledger())
        await store.save(sim_key, Ledger())
        assert set(await store.keys()) == {KEY, sim_key}
        assert await store.keys(Mode.LIVE) == [KEY]

    @pytest.mark.asyncio
    async def test_corrupt_json(self, store, db_session):
        db_session.add(LedgerDocument(variant="cocomo", partition_key="3t", mode="live", document="{not json"))
        await db_session.commit()
        with pytest.raises(LedgerIntegrityError):
            await store.load(KEY)

    @pytest.mark.asyncio
    async def test_schema_mismatch(self, store, db_session):
        db_session.add(LedgerDocument(
            variant="cocomo", partition_key="3t", mode="live",
            document=json.dumps({"betHistories": []}),
        ))
        await db_session.commit()
        with pytest.raises(LedgerIntegrityError, match="malformed"):
            await store.load(KEY)

    @pytest.mark.asyncio
    async def test_database_failure_is_storage_error(self, session_factory, db_engine):
        from mizuhanome.ledger.store import LedgerStore

        async with db_engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE ledgers")
        broken = LedgerStore(session_factory)
        with pytest.raises(StorageError):
            await broken.load(KEY)
        with pytest.raises(StorageError):
            await broken.save(KEY, Ledger())


class TestLocking:
    """Mutual exclusion around load-mutate-save."""

    @pytest.mark.asyncio
    async def test_concurrent_placements_place_once(self, store, policy):
        rule = SimpleRecoveryRule(policy)
        outcomes = await asyncio.gather(*[
            place_wager(store, KEY, f"race-{i}", CANDIDATES, "3t", rule=rule)
            for i in range(5)
        ])
        statuses = [o.status for o in outcomes]
        assert statuses.count(PlacementStatus.PLACED) == 1
        assert statuses.count(PlacementStatus.SKIPPED) == 4
        assert len((await store.load(KEY)).history) == 1

    @pytest.mark.asyncio
    async def test_different_partitions_proceed_independently(self, store, policy):
        rule = SimpleRecoveryRule(policy)
        keys = [LedgerKey(Variant.COCOMO, p, Mode.LIVE) for p in ("3t", "3f")]
        outcomes = await asyncio.gather(*[
            place_wager(store, k, "race-1", CANDIDATES, k.partition, rule=rule) for k in keys
        ])
        assert all(o.placed for o in outcomes)

    @pytest.mark.asyncio
    async def test_lock_waits_for_holder(self, store):
        order = []

        async def holder():
            async with store.locked(KEY):
                order.append("holder in")
                await asyncio.sleep(0.05)
                order.append("holder out")

        async def waiter():
            await asyncio.sleep(0.01)
            async with store.locked(KEY):
                order.append("waiter in")

        await asyncio.gather(holder(), waiter())
        assert order == ["holder in", "holder out", "waiter in"]

    @pytest.mark.asyncio
    async def test_lock_released_after_storage_error(self, store, policy):
        rule = SimpleRecoveryRule(policy)
        with patch.object(store, "save", AsyncMock(side_effect=StorageError("disk full"))):
            with pytest.raises(StorageError):
                await place_wager(store, KEY, "race-1", CANDIDATES, "3t", rule=rule)

        assert not store._locks[KEY].locked()
        outcome = await place_wager(store, KEY, "race-1", CANDIDATES, "3t", rule=rule)
        assert outcome.placed
