"""API endpoints for staking ledgers."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from mizuhanome.config import jst_now
from mizuhanome.betting.runner import bet_race, bet_race_from_provider
from mizuhanome.ledger.errors import LedgerError, LedgerIntegrityError
from mizuhanome.ledger.operations import PlacementResult, settle_wager
from mizuhanome.ledger.store import LedgerStore
from mizuhanome.ledger.types import LedgerKey, Mode, Variant
from mizuhanome.provider.client import ProviderClient, ProviderError
from mizuhanome.ranking import ORDERINGS, TICKET_TYPES, Candidate

router = APIRouter()


class CandidateIn(BaseModel):
    """A selection offered for a race."""

    key: str
    odds: Optional[float] = None
    probability: float = 0.0


class PlaceRequest(BaseModel):
    """Stake a race on a ledger."""

    race_id: str
    ticket_type: str
    candidates: list[CandidateIn]
    race_date: Optional[str] = None


class BetRequest(BaseModel):
    """Pick candidates from the provider's predictions and stake them."""

    race_id: str
    ticket_type: str
    n: int = Field(default=1, ge=1)
    min_probability: float = 0.0
    min_odds: Optional[float] = None
    order_by: str = "probability"
    race_date: Optional[str] = None


def get_store(request: Request) -> LedgerStore:
    return request.app.state.ledger_store


def get_provider(request: Request) -> Optional[ProviderClient]:
    return getattr(request.app.state, "provider", None)


def _key(variant: str, partition: str, mode: str) -> LedgerKey:
    try:
        return LedgerKey(Variant(variant), partition, Mode(mode))
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown ledger {variant}/{partition}/{mode}")


def _check_ticket_type(ticket_type: str) -> None:
    if ticket_type not in TICKET_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown ticket type {ticket_type}, expected one of {', '.join(TICKET_TYPES)}",
        )


def _storage_failure(e: Exception) -> HTTPException:
    if isinstance(e, LedgerIntegrityError):
        return HTTPException(status_code=500, detail=f"Ledger corrupt: {e}")
    return HTTPException(status_code=503, detail=f"Ledger storage unavailable: {e}")


def _placement_response(key: LedgerKey, placement: PlacementResult) -> dict:
    return {
        "key": str(key),
        "status": placement.status.value,
        "race_id": placement.race_id,
        "loss_cut": placement.loss_cut,
        "selections": [s.to_dict() for s in placement.selections],
    }


@router.get("/ledgers")
async def list_ledgers(mode: Optional[str] = None, store: LedgerStore = Depends(get_store)):
    """List all persisted ledgers."""
    try:
        keys = await store.keys(Mode(mode) if mode else None)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown mode {mode}")
    except LedgerError as e:
        raise _storage_failure(e)
    return [
        {"variant": k.variant.value, "partition": k.partition, "mode": k.mode.value}
        for k in keys
    ]


@router.get("/ledgers/{variant}/{partition}")
async def get_ledger(
    variant: str,
    partition: str,
    mode: str = "live",
    store: LedgerStore = Depends(get_store),
):
    """Current state of one ledger."""
    key = _key(variant, partition, mode)
    try:
        ledger = await store.load(key)
    except LedgerError as e:
        raise _storage_failure(e)
    return {
        "key": str(key),
        "ledger": ledger.to_dict(),
        "cumulative_stake": ledger.cumulative_stake(),
        "pending": [r.race_id for r in ledger.unresolved()],
    }


@router.post("/ledgers/{variant}/{partition}/reset")
async def reset_ledger(
    variant: str,
    partition: str,
    mode: str = "live",
    store: LedgerStore = Depends(get_store),
):
    """Start a ledger over from empty."""
    key = _key(variant, partition, mode)
    try:
        await store.reset(key)
    except LedgerError as e:
        raise _storage_failure(e)
    return {"key": str(key), "status": "reset"}


@router.post("/ledgers/{variant}/{partition}/place")
async def place(
    variant: str,
    partition: str,
    body: PlaceRequest,
    mode: str = "live",
    store: LedgerStore = Depends(get_store),
    provider: Optional[ProviderClient] = Depends(get_provider),
):
    """Stake a race; live ledgers also send the order."""
    key = _key(variant, partition, mode)
    _check_ticket_type(body.ticket_type)
    if not body.candidates:
        raise HTTPException(status_code=400, detail="No candidates")
    candidates = [Candidate(key=c.key, odds=c.odds, probability=c.probability) for c in body.candidates]
    try:
        placement = await bet_race(
            store, key, body.race_id, candidates, body.ticket_type,
            provider=provider, race_date=body.race_date,
        )
    except LedgerError as e:
        raise _storage_failure(e)
    return _placement_response(key, placement)


@router.post("/ledgers/{variant}/{partition}/settle")
async def settle(
    variant: str,
    partition: str,
    mode: str = "live",
    race_id: Optional[str] = None,
    store: LedgerStore = Depends(get_store),
    provider: Optional[ProviderClient] = Depends(get_provider),
):
    """Settle the open wager of a ledger against the provider's results."""
    key = _key(variant, partition, mode)
    if provider is None:
        raise HTTPException(status_code=503, detail="Provider not configured")
    try:
        result = await settle_wager(store, key, provider.fetch_result, race_id=race_id)
    except LedgerError as e:
        raise _storage_failure(e)
    return {
        "key": str(key),
        "status": result.status.value,
        "race_id": result.race_id,
        "won": result.won,
        "reset": result.reset,
        "multiplier": result.multiplier,
    }


@router.post("/ledgers/{variant}/{partition}/bet")
async def bet(
    variant: str,
    partition: str,
    body: BetRequest,
    mode: str = "live",
    store: LedgerStore = Depends(get_store),
    provider: Optional[ProviderClient] = Depends(get_provider),
):
    """Rank the race's candidates from provider data and stake the best ones."""
    key = _key(variant, partition, mode)
    _check_ticket_type(body.ticket_type)
    if body.order_by not in ORDERINGS:
        raise HTTPException(status_code=400, detail=f"Unknown ordering {body.order_by}")
    if provider is None:
        raise HTTPException(status_code=503, detail="Provider not configured")
    try:
        placement = await bet_race_from_provider(
            store, key, body.race_id, body.ticket_type, provider,
            n=body.n,
            min_probability=body.min_probability,
            min_odds=body.min_odds,
            order_by=body.order_by,
            race_date=body.race_date,
        )
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=f"Provider error: {e}")
    except LedgerError as e:
        raise _storage_failure(e)
    if placement is None:
        return {"key": str(key), "status": "no_candidates", "race_id": body.race_id, "selections": []}
    return _placement_response(key, placement)


@router.get("/racecards")
async def race_cards(
    day: Optional[date] = None,
    provider: Optional[ProviderClient] = Depends(get_provider),
):
    """Race cards for a day (default today, JST)."""
    if provider is None:
        raise HTTPException(status_code=503, detail="Provider not configured")
    try:
        return await provider.get_race_cards(day or jst_now().date())
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=f"Provider error: {e}")


@router.get("/poller")
async def poller_status(request: Request):
    """Settlement poller status."""
    poller = getattr(request.app.state, "settlement_poller", None)
    if poller is None:
        return {"running": False}
    return poller.status()
