"""Progressive staking ledger."""

from mizuhanome.ledger.errors import LedgerError, LedgerIntegrityError, StorageError
from mizuhanome.ledger.operations import (
    PlacementResult,
    PlacementStatus,
    SettlementResult,
    SettlementStatus,
    place_wager,
    settle_wager,
)
from mizuhanome.ledger.progression import StakePolicy, StakeRule, round_stake, rule_for
from mizuhanome.ledger.store import LedgerStore
from mizuhanome.ledger.types import Ledger, LedgerKey, Mode, Selection, Variant, WagerRecord

__all__ = [
    "Ledger",
    "LedgerError",
    "LedgerIntegrityError",
    "LedgerKey",
    "LedgerStore",
    "Mode",
    "PlacementResult",
    "PlacementStatus",
    "Selection",
    "SettlementResult",
    "SettlementStatus",
    "StakePolicy",
    "StakeRule",
    "StorageError",
    "Variant",
    "WagerRecord",
    "place_wager",
    "round_stake",
    "rule_for",
    "settle_wager",
]
