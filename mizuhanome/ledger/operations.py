"""Placement and settlement of wagers against a staking ledger."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from mizuhanome.config import jst_now, settings
from mizuhanome.ledger.progression import StakePolicy, StakeRule, rule_for
from mizuhanome.ledger.store import LedgerStore
from mizuhanome.ledger.types import LedgerKey, Selection, WagerRecord
from mizuhanome.provider.client import RaceResult
from mizuhanome.ranking import TICKET_TYPES, Candidate

logger = logging.getLogger(__name__)

ResultFetcher = Callable[[str], Awaitable[Optional[RaceResult]]]


class PlacementStatus(str, Enum):
    PLACED = "placed"
    SKIPPED = "skipped"  # previous wager still awaiting settlement


class SettlementStatus(str, Enum):
    RESOLVED = "resolved"
    FORCED = "forced"  # no result by the cutoff, settled as a loss
    PENDING = "pending"
    IDLE = "idle"  # nothing unresolved to settle


@dataclass
class PlacementResult:
    status: PlacementStatus
    race_id: str
    selections: list[Selection] = field(default_factory=list)
    loss_cut: bool = False

    @property
    def placed(self) -> bool:
        return self.status == PlacementStatus.PLACED

    @property
    def total_stake(self) -> int:
        return sum(s.stake for s in self.selections)


@dataclass
class SettlementResult:
    status: SettlementStatus
    race_id: Optional[str] = None
    won: bool = False
    reset: bool = False
    multiplier: Optional[float] = None


def _rule(key: LedgerKey, rule: Optional[StakeRule]) -> StakeRule:
    if rule is not None:
        if rule.variant != key.variant:
            raise ValueError(f"Rule {rule.variant.value} does not match ledger {key}")
        return rule
    return rule_for(key.variant, StakePolicy.from_settings(settings))


async def place_wager(
    store: LedgerStore,
    key: LedgerKey,
    race_id: str,
    candidates: list[Candidate],
    ticket_type: str,
    race_date: Optional[str] = None,
    rule: Optional[StakeRule] = None,
) -> PlacementResult:
    """Record the next stake(s) for a race.

    Only one wager per ledger may await settlement; while one does, the call
    is a no-op reported as SKIPPED. The caller forwards placed stakes to the
    order-placement collaborator.
    """
    if ticket_type not in TICKET_TYPES:
        raise ValueError(f"Unknown ticket type {ticket_type!r}, expected one of {', '.join(TICKET_TYPES)}")
    rule = _rule(key, rule)

    async with store.locked(key):
        ledger = await store.load(key)

        pending = ledger.oldest_unresolved()
        if pending is not None:
            logger.debug(f"{key}: skipping race {race_id}, race {pending.race_id} not settled yet")
            return PlacementResult(status=PlacementStatus.SKIPPED, race_id=race_id)

        cut = rule.loss_cut(ledger)
        if cut:
            logger.info(
                f"{key}: loss-cut after {len(ledger.history)} races "
                f"({ledger.cumulative_stake()} staked), starting over"
            )
            ledger.clear()

        unit = rule.next_unit(ledger)
        selections = rule.next_selections(ledger, candidates)
        ledger.history.append(WagerRecord(
            race_id=race_id,
            ticket_type=ticket_type,
            selections=selections,
            race_date=race_date,
            unit=unit,
        ))
        await store.save(key, ledger)

    logger.info(
        f"{key}: race {race_id} staked "
        + ", ".join(f"{s.key}={s.stake}" for s in selections)
    )
    return PlacementResult(
        status=PlacementStatus.PLACED,
        race_id=race_id,
        selections=[Selection(s.key, s.stake) for s in selections],
        loss_cut=cut,
    )


def _past_cutoff(now: datetime, cutoff_hour: int) -> bool:
    return now.hour >= cutoff_hour


async def settle_wager(
    store: LedgerStore,
    key: LedgerKey,
    fetch_result: ResultFetcher,
    race_id: Optional[str] = None,
    now: Optional[datetime] = None,
    cutoff_hour: Optional[int] = None,
    rule: Optional[StakeRule] = None,
) -> SettlementResult:
    """Reconcile the unresolved wager with its race result.

    With ``race_id`` only that race's wager is considered; otherwise the
    oldest unresolved wager is. When no result is available the wager stays
    open until ``cutoff_hour`` (local time), after which it is settled as a
    loss so the ledger never stays stuck.
    """
    rule = _rule(key, rule)
    if cutoff_hour is None:
        cutoff_hour = settings.settlement_cutoff_hour

    async with store.locked(key):
        ledger = await store.load(key)

        if race_id is None:
            record = ledger.oldest_unresolved()
        else:
            record = ledger.find_unresolved(race_id)
        if record is None:
            return SettlementResult(status=SettlementStatus.IDLE, race_id=race_id)

        try:
            result = await fetch_result(record.race_id)
        except Exception as e:
            logger.warning(f"{key}: result fetch for race {record.race_id} failed: {e}")
            result = None

        if result is None:
            current = now or jst_now()
            if not _past_cutoff(current, cutoff_hour):
                logger.debug(f"{key}: race {record.race_id} result pending")
                return SettlementResult(status=SettlementStatus.PENDING, race_id=record.race_id)
            for selection in record.selections:
                selection.realized_multiplier = None
            status = SettlementStatus.FORCED
            logger.warning(f"{key}: no result for race {record.race_id} by {cutoff_hour}:00, settled as a loss")
        else:
            for selection in record.selections:
                selection.realized_multiplier = result.multiplier(record.ticket_type, selection.key)
            status = SettlementStatus.RESOLVED

        record.resolved = True
        won = rule.is_win(record)
        reset = rule.apply_outcome(ledger, record)
        await store.save(key, ledger)

    logger.info(
        f"{key}: race {record.race_id} {status.value} "
        f"{'WIN' if won else 'LOSS'} x{record.realized_multiplier}"
        + (" - ledger reset" if reset else "")
    )
    return SettlementResult(
        status=status,
        race_id=record.race_id,
        won=won,
        reset=reset,
        multiplier=record.realized_multiplier,
    )
