"""Data provider client: sessions, race results and order placement."""

import csv
import io
import logging
from datetime import date
from typing import Any, Optional

import httpx

from mizuhanome.config import settings

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Exception raised when the data provider call fails."""

    pass


class RaceResult:
    """Settled result of one race as published by the provider.

    Payout fields are named ``odds_<ticket type><combination>`` and hold the
    multiplier scaled by 100 as a string ("260" is 2.60x). A null field means
    the combination did not pay.
    """

    def __init__(self, race_id: str, body: dict[str, Any]):
        self.race_id = race_id
        self.body = body

    def multiplier(self, ticket_type: str, key: str) -> Optional[float]:
        raw = self.body.get(f"odds_{ticket_type}{key}")
        if raw is None or raw == "":
            return None
        try:
            return int(raw) / 100
        except (TypeError, ValueError):
            logger.warning(f"Race {self.race_id}: unreadable payout {raw!r} for {ticket_type}{key}")
            return None

    def __repr__(self) -> str:
        return f"RaceResult({self.race_id!r})"


class ProviderClient:
    """Async client for the race data provider's REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        email: Optional[str] = None,
        access_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.base_url).rstrip("/")
        self.email = email if email is not None else settings.email
        self.access_key = access_key if access_key is not None else settings.access_key
        self.timeout = timeout if timeout is not None else settings.provider_timeout
        self.session: Optional[str] = None
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"HTTP {e.response.status_code}: {method} {path}") from e
        except httpx.RequestError as e:
            raise ProviderError(f"Request failed: {method} {path}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from {method} {path}") from e

    def _require_session(self) -> str:
        if not self.session:
            raise ProviderError("Not authenticated")
        return self.session

    async def authenticate(self) -> str:
        """Open a provider session."""
        logger.info("Authenticating with data provider")
        data = await self._request(
            "POST", "/authenticate",
            params={"email": self.email, "accessKey": self.access_key},
        )
        session = data.get("session")
        if not session:
            raise ProviderError(f"Authentication rejected: {data.get('message', 'no session')}")
        self.session = session
        return session

    async def refresh(self) -> None:
        """Extend the current session."""
        session = self._require_session()
        logger.debug("Refreshing provider session")
        await self._request("POST", "/refresh", params={"session": session})

    async def destroy(self) -> None:
        """Close the current session, if any."""
        if not self.session:
            return
        try:
            await self._request("POST", "/destroy", params={"session": self.session})
        finally:
            self.session = None

    async def get_race_result(self, race_id: str) -> Optional[RaceResult]:
        """Final result for a race, or None while it is not yet published."""
        session = self._require_session()
        data = await self._request("GET", f"/data/raceresult/{race_id}", params={"session": session})
        body = data.get("body")
        if not body:
            return None
        return RaceResult(race_id, body)

    async def get_race_cards(self, day: date) -> list[dict[str, str]]:
        """Race cards for one day.

        The provider serves a whole month as CSV; rows are filtered to ``day``
        on the ``hd`` (YYYY-MM-DD) column.
        """
        session = self._require_session()
        path = f"/data/racecard/{day:%Y}/{day:%m}"
        try:
            response = await self.client.get(path, params={"session": session})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"HTTP {e.response.status_code}: GET {path}") from e
        except httpx.RequestError as e:
            raise ProviderError(f"Request failed: GET {path}: {e}") from e

        wanted = day.isoformat()
        rows = csv.DictReader(io.StringIO(response.text))
        return [row for row in rows if row.get("hd") == wanted]

    async def get_odds(self, race_id: str) -> dict[str, Any]:
        """Pre-race odds keyed ``odds_<ticket type><combination>``; empty when unpublished."""
        session = self._require_session()
        data = await self._request("GET", f"/data/odds/{race_id}", params={"session": session})
        return data.get("body") or {}

    async def get_predictions(self, race_id: str) -> dict[str, Any]:
        """Pre-race probabilities keyed ``<ticket type><combination>``; empty when unpublished."""
        session = self._require_session()
        data = await self._request(
            "GET", f"/predicts/{race_id}",
            params={"session": session, "type": 2},
        )
        return data.get("predict") or {}

    async def fetch_result(self, race_id: str) -> Optional[RaceResult]:
        """Result lookup for settlement; provider failures read as "not yet"."""
        try:
            return await self.get_race_result(race_id)
        except ProviderError as e:
            logger.warning(f"Result fetch failed for race {race_id}: {e}")
            return None

    async def auto_buy(self, race_id: str, tickets: list[dict[str, Any]]) -> dict[str, Any]:
        """Place orders for a race.

        ``tickets`` is a list of ``{"type": "3t", "numbers": [{"numberset":
        "1-2-3", "bet": 200}, ...]}``.
        """
        session = self._require_session()
        logger.info(f"Placing order for race {race_id}: {tickets}")
        return await self._request(
            "POST", f"/autobuy/{race_id}",
            params={"session": session},
            json={"tickets": tickets, "private": True},
        )
