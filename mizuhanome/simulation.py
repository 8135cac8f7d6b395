"""Replay recorded races through a staking strategy in simulation mode.

Simulation ledgers live under ``Mode.SIMULATION`` and are never settled
against the live provider: each recorded race carries its own result.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from mizuhanome.ledger.operations import (
    PlacementStatus,
    SettlementStatus,
    place_wager,
    settle_wager,
)
from mizuhanome.ledger.progression import StakeRule
from mizuhanome.ledger.store import LedgerStore
from mizuhanome.ledger.types import LedgerKey, Mode
from mizuhanome.provider.client import RaceResult
from mizuhanome.ranking import Candidate

logger = logging.getLogger(__name__)


@dataclass
class RecordedRace:
    """A past race: what was on offer and how it finished."""

    race_id: str
    ticket_type: str
    candidates: list[Candidate]
    result: Optional[dict[str, Any]]
    race_date: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "RecordedRace":
        return cls(
            race_id=str(data["race_id"]),
            ticket_type=data["ticket_type"],
            candidates=[
                Candidate(key=c["key"], odds=c.get("odds"), probability=c.get("probability", 0.0))
                for c in data["candidates"]
            ],
            result=data.get("result"),
            race_date=data.get("race_date"),
        )


@dataclass
class SimulationTally:
    """Running totals for one simulation run."""

    races: int = 0
    bets: int = 0
    skipped: int = 0
    hits: int = 0
    misses: int = 0
    resets: int = 0
    total_stake: int = 0
    total_return: float = 0.0
    max_stake: int = 0
    longest_miss_streak: int = 0
    _miss_streak: int = field(default=0, repr=False)

    @property
    def profit(self) -> float:
        return self.total_return - self.total_stake

    @property
    def hit_rate(self) -> float:
        settled = self.hits + self.misses
        return round(self.hits / settled * 100, 1) if settled else 0.0

    def record_hit(self) -> None:
        self.hits += 1
        self._miss_streak = 0

    def record_miss(self) -> None:
        self.misses += 1
        self._miss_streak += 1
        self.longest_miss_streak = max(self.longest_miss_streak, self._miss_streak)

    def to_dict(self) -> dict:
        return {
            "races": self.races,
            "bets": self.bets,
            "skipped": self.skipped,
            "hits": self.hits,
            "misses": self.misses,
            "resets": self.resets,
            "hit_rate": self.hit_rate,
            "total_stake": self.total_stake,
            "total_return": round(self.total_return, 2),
            "profit": round(self.profit, 2),
            "max_stake": self.max_stake,
            "longest_miss_streak": self.longest_miss_streak,
        }


def load_races(path: Path) -> list[RecordedRace]:
    """Read recorded races from a JSON list."""
    with open(path, encoding="utf-8") as f:
        return [RecordedRace.from_dict(r) for r in json.load(f)]


async def simulate(
    store: LedgerStore,
    key: LedgerKey,
    races: list[RecordedRace],
    rule: Optional[StakeRule] = None,
    tally: Optional[SimulationTally] = None,
    fresh: bool = True,
) -> SimulationTally:
    """Place and settle each recorded race in order."""
    if key.mode != Mode.SIMULATION:
        raise ValueError(f"Simulation must run on a simulation ledger, got {key}")
    tally = tally or SimulationTally()
    if fresh:
        await store.reset(key)

    results = {r.race_id: r.result for r in races}

    async def fetch_recorded(race_id: str) -> Optional[RaceResult]:
        body = results.get(race_id)
        return RaceResult(race_id, body) if body is not None else None

    for race in races:
        tally.races += 1
        if not race.candidates:
            continue

        placement = await place_wager(
            store, key, race.race_id, race.candidates, race.ticket_type,
            race_date=race.race_date, rule=rule,
        )
        if placement.status == PlacementStatus.SKIPPED:
            tally.skipped += 1
            continue

        tally.bets += 1
        if placement.loss_cut:
            tally.resets += 1
        tally.total_stake += placement.total_stake
        tally.max_stake = max(tally.max_stake, placement.total_stake)

        # recorded races are final, so a missing result is settled as a loss
        settlement = await settle_wager(
            store, key, fetch_recorded, race_id=race.race_id, cutoff_hour=0, rule=rule,
        )
        if settlement.status not in (SettlementStatus.RESOLVED, SettlementStatus.FORCED):
            continue

        paid = 0.0
        if race.result is not None:
            result = RaceResult(race.race_id, race.result)
            for selection in placement.selections:
                multiplier = result.multiplier(race.ticket_type, selection.key)
                if multiplier is not None:
                    paid += selection.stake * multiplier
        tally.total_return += paid

        if settlement.won:
            tally.record_hit()
        else:
            tally.record_miss()
        if settlement.reset:
            tally.resets += 1

    logger.info(f"Simulation {key}: {tally.to_dict()}")
    return tally
