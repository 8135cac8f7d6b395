"""Per-race betting: pick candidates, stake via the ledger, then forward live orders."""

import logging
from typing import Optional

from mizuhanome.ledger.operations import PlacementResult, place_wager
from mizuhanome.ledger.progression import StakeRule
from mizuhanome.ledger.store import LedgerStore
from mizuhanome.ledger.types import LedgerKey, Mode
from mizuhanome.provider.client import ProviderClient, ProviderError
from mizuhanome.ranking import Candidate, build_candidates, top_n

logger = logging.getLogger(__name__)


def make_ticket(ticket_type: str, placement: PlacementResult) -> dict:
    """Order payload for the provider's auto-buy endpoint."""
    return {
        "type": ticket_type,
        "numbers": [{"numberset": s.key, "bet": s.stake} for s in placement.selections],
    }


async def bet_race(
    store: LedgerStore,
    key: LedgerKey,
    race_id: str,
    candidates: list[Candidate],
    ticket_type: str,
    provider: Optional[ProviderClient] = None,
    race_date: Optional[str] = None,
    rule: Optional[StakeRule] = None,
) -> PlacementResult:
    """Place one race's wager on the ledger and, when live, buy the ticket.

    The wager is persisted before the order goes out. A failed order is
    logged and left on the ledger; settlement will resolve it from the race
    result like any other wager.
    """
    if not candidates:
        raise ValueError(f"No candidates for race {race_id}")

    placement = await place_wager(
        store, key, race_id, candidates, ticket_type, race_date=race_date, rule=rule,
    )
    if not placement.placed:
        return placement

    if key.mode != Mode.LIVE:
        logger.debug(f"{key}: simulation, no order sent for race {race_id}")
        return placement
    if provider is None:
        logger.warning(f"{key}: no provider configured, order for race {race_id} not sent")
        return placement

    try:
        await provider.auto_buy(race_id, [make_ticket(ticket_type, placement)])
    except ProviderError as e:
        logger.error(f"{key}: order for race {race_id} failed: {e}")
    return placement


async def bet_race_from_provider(
    store: LedgerStore,
    key: LedgerKey,
    race_id: str,
    ticket_type: str,
    provider: ProviderClient,
    n: int = 1,
    min_probability: float = 0.0,
    min_odds: Optional[float] = None,
    order_by: str = "probability",
    race_date: Optional[str] = None,
    rule: Optional[StakeRule] = None,
) -> Optional[PlacementResult]:
    """Fetch predictions and odds for a race, pick candidates, and bet them.

    Returns None when the race offers nothing that passes the floors.
    """
    predictions = await provider.get_predictions(race_id)
    odds = await provider.get_odds(race_id)
    candidates = top_n(
        build_candidates(ticket_type, predictions, odds),
        n,
        min_probability=min_probability,
        min_odds=min_odds,
        order_by=order_by,
    )
    if not candidates:
        logger.info(f"{key}: race {race_id} has no candidate above the floors, not betting")
        return None
    return await bet_race(
        store, key, race_id, candidates, ticket_type,
        provider=provider, race_date=race_date, rule=rule,
    )
