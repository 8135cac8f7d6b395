"""Stake progression rules.

Each variant is a small state machine over a partition's ``Ledger``:

    EMPTY --place--> ACTIVE --settle(win)--> EMPTY
                       |
                       +--place(loss-cut reached)--> EMPTY --> ACTIVE

Rules are pure apart from mutating the ledger handed to them; persistence and
locking belong to the store and the operations module.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from mizuhanome.ledger.errors import LedgerIntegrityError
from mizuhanome.ledger.types import Ledger, Selection, Variant, WagerRecord
from mizuhanome.ranking import Candidate

STAKE_INCREMENT = 100
MIN_STAKE = 100


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def round_stake(amount: float) -> int:
    """Round to the nearest 100 with a 100 floor."""
    stake = round_half_up(amount / STAKE_INCREMENT) * STAKE_INCREMENT
    return max(stake, MIN_STAKE)


@dataclass
class StakePolicy:
    """Tuning constants for every variant."""

    cocomo_base_stake: int = 200
    cocomo_max_count: int = 14
    win_threshold: float = 2.6
    top_n_base_stake: int = 200
    top_n_want_rate: float = 1.5
    top_n_rate_limit_count: int = 12
    top_n_max_count: int = 16
    store2t_base_stake: int = 100
    store2t_ceiling: int = 20000
    winners_base_stake: int = 100

    @classmethod
    def from_settings(cls, settings) -> "StakePolicy":
        return cls(
            cocomo_base_stake=settings.cocomo_base_stake,
            cocomo_max_count=settings.cocomo_max_count,
            win_threshold=settings.win_threshold,
            top_n_base_stake=settings.top_n_base_stake,
            top_n_want_rate=settings.top_n_want_rate,
            top_n_rate_limit_count=settings.top_n_rate_limit_count,
            top_n_max_count=settings.top_n_max_count,
            store2t_base_stake=settings.store2t_base_stake,
            store2t_ceiling=settings.store2t_ceiling,
            winners_base_stake=settings.winners_base_stake,
        )


def recovery_stake(history: list[WagerRecord], base: int) -> int:
    """Doubling-recovery stake: base, repeat, then sum of the last two."""
    if not history:
        return base
    if len(history) == 1:
        return history[-1].total_stake
    return history[-2].total_stake + history[-1].total_stake


class StakeRule(ABC):
    """Common interface for the staking variants."""

    variant: Variant

    def __init__(self, policy: Optional[StakePolicy] = None):
        self.policy = policy or StakePolicy()

    def loss_cut(self, ledger: Ledger) -> bool:
        """True when the history must be abandoned before the next placement."""
        return False

    @abstractmethod
    def next_selections(self, ledger: Ledger, candidates: list[Candidate]) -> list[Selection]:
        """Stakes for the next wager, one per candidate used."""

    def next_unit(self, ledger: Ledger) -> int:
        return 1

    @abstractmethod
    def is_win(self, record: WagerRecord) -> bool:
        pass

    def apply_outcome(self, ledger: Ledger, record: WagerRecord) -> bool:
        """Apply the win/reset rule for a freshly resolved record.

        Returns True when the ledger was reset.
        """
        if self.is_win(record):
            ledger.clear()
            return True
        return False

    def _single(self, candidates: list[Candidate], stake: int) -> list[Selection]:
        if not candidates:
            raise ValueError(f"{self.variant.value}: at least one candidate is required")
        return [Selection(key=candidates[0].key, stake=stake)]


class SimpleRecoveryRule(StakeRule):
    """Fibonacci recovery on the single best candidate; win at >= 2.6x."""

    variant = Variant.COCOMO

    def loss_cut(self, ledger: Ledger) -> bool:
        return len(ledger.history) >= self.policy.cocomo_max_count

    def next_selections(self, ledger, candidates):
        return self._single(candidates, recovery_stake(ledger.history, self.policy.cocomo_base_stake))

    def is_win(self, record):
        multiplier = record.realized_multiplier
        return multiplier is not None and multiplier >= self.policy.win_threshold


class TargetProfitRule(StakeRule):
    """Stake every candidate so that any hit returns paid-so-far x want_rate."""

    variant = Variant.COCOMO_TOP_N

    def loss_cut(self, ledger: Ledger) -> bool:
        return len(ledger.history) >= self.policy.top_n_max_count

    def target_profit(self, ledger: Ledger, candidate_count: int) -> int:
        n = len(ledger.history)
        if n == 0:
            paid = self.policy.top_n_base_stake * candidate_count
        else:
            paid = ledger.cumulative_stake()
        # cap runaway escalation on long losing runs
        want_rate = 1.0 if n > self.policy.top_n_rate_limit_count else self.policy.top_n_want_rate
        return round_half_up(paid * want_rate)

    def next_selections(self, ledger, candidates):
        if not candidates:
            raise ValueError(f"{self.variant.value}: at least one candidate is required")
        want = self.target_profit(ledger, len(candidates))
        selections = []
        for candidate in candidates:
            odds = candidate.odds if candidate.odds else 1.0
            selections.append(Selection(key=candidate.key, stake=round_stake(want / odds)))
        return selections

    def is_win(self, record):
        return any(
            s.realized_multiplier is not None and s.realized_multiplier > 1
            for s in record.selections
        )


class PartitionedRecoveryRule(SimpleRecoveryRule):
    """Simple recovery per venue, cut once the total staked passes a ceiling."""

    variant = Variant.STORE2T

    def loss_cut(self, ledger: Ledger) -> bool:
        return ledger.cumulative_stake() > self.policy.store2t_ceiling

    def next_selections(self, ledger, candidates):
        return self._single(candidates, recovery_stake(ledger.history, self.policy.store2t_base_stake))


class ProgressiveDoublingRule(StakeRule):
    """Winners investment method.

    Bets one unit until two losses are queued, then bets twice the oldest
    queued loss-unit. A win strikes the oldest unit off the queue; an empty
    queue ends the run.
    """

    variant = Variant.WINNERS

    def next_unit(self, ledger: Ledger) -> int:
        if not ledger.aggressive:
            return 1
        if not ledger.loss_units:
            raise LedgerIntegrityError("winners ledger is aggressive with an empty loss-unit queue")
        return ledger.loss_units[0] * 2

    def next_selections(self, ledger, candidates):
        unit = self.next_unit(ledger)
        return self._single(candidates, round_stake(self.policy.winners_base_stake * unit))

    def is_win(self, record):
        multiplier = record.realized_multiplier
        return multiplier is not None and multiplier > 1

    def apply_outcome(self, ledger, record):
        if self.is_win(record):
            if ledger.loss_units:
                ledger.loss_units.pop(0)
            if not ledger.loss_units:
                ledger.clear()
                return True
            return False

        ledger.loss_units.append(record.unit)
        if not ledger.aggressive and len(ledger.loss_units) == 2:
            ledger.aggressive = True
        return False


RULES: dict[Variant, type[StakeRule]] = {
    Variant.COCOMO: SimpleRecoveryRule,
    Variant.COCOMO_TOP_N: TargetProfitRule,
    Variant.STORE2T: PartitionedRecoveryRule,
    Variant.WINNERS: ProgressiveDoublingRule,
}


def rule_for(variant: Variant, policy: Optional[StakePolicy] = None) -> StakeRule:
    return RULES[Variant(variant)](policy)
