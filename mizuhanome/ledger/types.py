"""Ledger data types and their JSON document encoding."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from mizuhanome.ledger.errors import LedgerIntegrityError


class Variant(str, Enum):
    """Closed set of staking strategies."""

    COCOMO = "cocomo"
    COCOMO_TOP_N = "cocomo_top_n"
    STORE2T = "store2t"
    WINNERS = "winners"


class Mode(str, Enum):
    LIVE = "live"
    SIMULATION = "simulation"


@dataclass(frozen=True)
class LedgerKey:
    """Identifies one independent ledger."""

    variant: Variant
    partition: str
    mode: Mode = Mode.LIVE

    def __str__(self) -> str:
        return f"{self.variant.value}/{self.partition}/{self.mode.value}"


@dataclass
class Selection:
    """One staked selection (combination) within a wager."""

    key: str
    stake: int
    realized_multiplier: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "stake": self.stake,
            "realized_multiplier": self.realized_multiplier,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Selection":
        _require_mapping(data, "selection")
        key = _require(data, "key", str)
        stake = _require(data, "stake", int)
        multiplier = data.get("realized_multiplier")
        if multiplier is not None:
            if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
                raise LedgerIntegrityError(f"selection {key}: realized_multiplier must be a number or null")
            if multiplier < 0:
                raise LedgerIntegrityError(f"selection {key}: negative realized_multiplier {multiplier}")
            multiplier = float(multiplier)
        return cls(key=key, stake=stake, realized_multiplier=multiplier)


@dataclass
class WagerRecord:
    """One staked decision for one race."""

    race_id: str
    ticket_type: str
    selections: list[Selection]
    race_date: Optional[str] = None
    unit: int = 1
    resolved: bool = False

    @property
    def total_stake(self) -> int:
        return sum(s.stake for s in self.selections)

    @property
    def realized_multiplier(self) -> Optional[float]:
        """Best payout among the selections; None means no payout."""
        paid = [s.realized_multiplier for s in self.selections if s.realized_multiplier is not None]
        return max(paid) if paid else None

    def to_dict(self) -> dict:
        return {
            "race_id": self.race_id,
            "race_date": self.race_date,
            "ticket_type": self.ticket_type,
            "unit": self.unit,
            "selections": [s.to_dict() for s in self.selections],
            "resolved": self.resolved,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "WagerRecord":
        _require_mapping(data, "wager record")
        race_id = _require(data, "race_id", str)
        selections_raw = _require(data, "selections", list)
        if not selections_raw:
            raise LedgerIntegrityError(f"wager {race_id}: no selections")
        record = cls(
            race_id=race_id,
            ticket_type=_require(data, "ticket_type", str),
            selections=[Selection.from_dict(s) for s in selections_raw],
            race_date=data.get("race_date"),
            unit=_require(data, "unit", int),
            resolved=_require(data, "resolved", bool),
        )
        if not record.resolved and record.realized_multiplier is not None:
            raise LedgerIntegrityError(f"wager {race_id}: unresolved but has a realized multiplier")
        return record


@dataclass
class Ledger:
    """Staking state for one (variant, partition, mode)."""

    history: list[WagerRecord] = field(default_factory=list)
    loss_units: list[int] = field(default_factory=list)
    aggressive: bool = False

    def unresolved(self) -> list[WagerRecord]:
        return [r for r in self.history if not r.resolved]

    def oldest_unresolved(self) -> Optional[WagerRecord]:
        for record in self.history:
            if not record.resolved:
                return record
        return None

    def find_unresolved(self, race_id: str) -> Optional[WagerRecord]:
        for record in self.history:
            if record.race_id == race_id and not record.resolved:
                return record
        return None

    def cumulative_stake(self) -> int:
        return sum(r.total_stake for r in self.history)

    def clear(self) -> None:
        """Return to the EMPTY state, dropping variant accumulators too."""
        self.history = []
        self.loss_units = []
        self.aggressive = False

    def to_dict(self) -> dict:
        return {
            "history": [r.to_dict() for r in self.history],
            "loss_units": list(self.loss_units),
            "aggressive": self.aggressive,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Ledger":
        _require_mapping(data, "ledger")
        history = [WagerRecord.from_dict(r) for r in _require(data, "history", list)]
        loss_units = _require(data, "loss_units", list)
        if any(isinstance(u, bool) or not isinstance(u, int) for u in loss_units):
            raise LedgerIntegrityError("ledger: loss_units must be integers")
        ledger = cls(
            history=history,
            loss_units=loss_units,
            aggressive=_require(data, "aggressive", bool),
        )
        if len(ledger.unresolved()) > 1:
            raise LedgerIntegrityError("ledger: more than one unresolved wager")
        return ledger


def _require_mapping(data: Any, what: str) -> None:
    if not isinstance(data, dict):
        raise LedgerIntegrityError(f"{what}: expected an object, got {type(data).__name__}")


def _require(data: dict, name: str, kind: type) -> Any:
    if name not in data:
        raise LedgerIntegrityError(f"missing field '{name}'")
    value = data[name]
    # bool is an int subclass; keep the two apart
    if kind is int and isinstance(value, bool):
        raise LedgerIntegrityError(f"field '{name}' must be int")
    if not isinstance(value, kind):
        raise LedgerIntegrityError(f"field '{name}' must be {kind.__name__}")
    return value
