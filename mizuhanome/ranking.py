"""Candidate selections for a race, built from provider predictions and odds.

The provider publishes two flat maps per race:

- predictions: ``{"3t1-2-3": "0.134", "2t1-2": "0.21", ...}`` keyed by ticket
  type followed by the combination;
- odds: ``{"odds_3t1-2-3": "12.5", ...}`` keyed by ``odds_`` + ticket type +
  combination.

Ranking only orders and filters; how much to stake is the ledger's job.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

TICKET_TYPES = ("3t", "3f", "2t", "2f")


@dataclass
class Candidate:
    """A selection offered to the ledger for one race."""

    key: str
    odds: Optional[float]
    probability: float = 0.0

    @property
    def expected_value(self) -> float:
        if self.odds is None:
            return 0.0
        return self.probability * self.odds


def _parse_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def build_candidates(
    ticket_type: str,
    predictions: dict[str, Any],
    odds: dict[str, Any],
) -> list[Candidate]:
    """Join predictions and pre-race odds for one ticket type."""
    if ticket_type not in TICKET_TYPES:
        raise ValueError(f"Unknown ticket type: {ticket_type}")

    candidates = []
    for name, raw_probability in predictions.items():
        if not name.startswith(ticket_type):
            continue
        key = name[len(ticket_type):]
        probability = _parse_float(raw_probability)
        if probability is None:
            logger.debug(f"Skipping {name}: unparseable probability {raw_probability!r}")
            continue
        candidates.append(Candidate(
            key=key,
            odds=_parse_float(odds.get(f"odds_{ticket_type}{key}")),
            probability=probability,
        ))
    return candidates


def order_by_probability(candidates: list[Candidate]) -> list[Candidate]:
    return sorted(candidates, key=lambda c: c.probability, reverse=True)


def order_by_expected_value(candidates: list[Candidate]) -> list[Candidate]:
    return sorted(candidates, key=lambda c: c.expected_value, reverse=True)


ORDERINGS: dict[str, Callable[[list[Candidate]], list[Candidate]]] = {
    "probability": order_by_probability,
    "expected_value": order_by_expected_value,
}


def top_n(
    candidates: list[Candidate],
    n: int,
    min_probability: float = 0.0,
    min_odds: Optional[float] = None,
    order_by: str = "probability",
) -> list[Candidate]:
    """Best n candidates under ``order_by``, gated by probability and odds floors.

    The floors are checked against the top candidate only: if it fails,
    nothing is bet on the race.
    """
    if order_by not in ORDERINGS:
        raise ValueError(f"Unknown ordering: {order_by}")
    ordered = ORDERINGS[order_by](candidates)
    if not ordered:
        return []
    best = ordered[0]
    if best.probability < min_probability:
        return []
    if min_odds is not None and (best.odds is None or best.odds < min_odds):
        return []
    return ordered[:n]
