"""Moralis Solana gateway client for pump.fun listings and holder data."""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.types import HolderStats, RawListing, TopHolder

logger = structlog.get_logger(__name__)


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


def map_moralis_listing(data: dict[str, Any]) -> RawListing:
    """Map a Moralis pump.fun listing object to RawListing.

    Raises:
        ValidationError: If the listing has no token address
    """
    return RawListing(
        token_address=data.get("tokenAddress") or data.get("mint"),
        name=data.get("name"),
        symbol=data.get("symbol"),
        price_usd=_str_or_none(data.get("priceUsd")),
        liquidity=_str_or_none(data.get("liquidity")),
        fully_diluted_valuation=_str_or_none(data.get("fullyDilutedValuation")),
        created_at=data.get("createdAt"),
    )


def map_moralis_listings(data: dict[str, Any] | list[Any]) -> list[RawListing]:
    """Map a listings response, skipping malformed entries."""
    items = data.get("result") if isinstance(data, dict) else data
    listings = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        try:
            listings.append(map_moralis_listing(item))
        except ValidationError as e:
            logger.debug("Skipping malformed listing", error=str(e))
    return listings


def map_holder_stats(data: dict[str, Any]) -> HolderStats:
    total = data.get("totalHolders", data.get("total"))
    try:
        return HolderStats(total=int(total) if total is not None else None)
    except (TypeError, ValueError):
        return HolderStats()


def map_top_holder(data: dict[str, Any]) -> TopHolder | None:
    """Take the first entry of a top-holders response."""
    holders = data.get("result") if isinstance(data, dict) else None
    if not holders or not isinstance(holders[0], dict):
        return None

    first = holders[0]
    percentage = first.get("percentageRelativeToTotalSupply")
    try:
        percentage = float(percentage) if percentage is not None else None
    except (TypeError, ValueError):
        percentage = None

    return TopHolder(owner_address=first.get("ownerAddress"), percentage=percentage)


class MoralisClient:
    """Moralis Solana gateway client."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://solana-gateway.moralis.io",
        session: httpx.AsyncClient | None = None,
        listing_limit: int = 100,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
    ) -> None:
        """Initialize Moralis client.

        Args:
            api_key: Moralis API key
            base_url: Gateway base URL
            session: Optional httpx client session
            listing_limit: Listings requested per poll
            timeout_seconds: Request timeout
            max_attempts: Attempts per request on network errors
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.listing_limit = listing_limit
        self.timeout_seconds = timeout_seconds
        self._owns_session = session is None
        self.session = session or httpx.AsyncClient(
            headers={"User-Agent": "sol-memebot/0.1"}
        )

        self.retry_config = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((httpx.NetworkError, httpx.TimeoutException)),
            reraise=True,
        )

    async def _make_request(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Make HTTP request with retries on network errors.

        Raises:
            httpx.HTTPError: On HTTP errors or when all retries are exhausted
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = {}

        if self.api_key:
            headers["X-API-Key"] = self.api_key

        async for attempt in self.retry_config:
            with attempt:
                try:
                    response = await self.session.get(
                        url,
                        params=params,
                        headers=headers,
                        timeout=self.timeout_seconds,
                    )
                    response.raise_for_status()
                    return response.json()
                except (httpx.NetworkError, httpx.TimeoutException) as e:
                    logger.warning(
                        "Network error in Moralis request",
                        endpoint=endpoint,
                        error=str(e),
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise

    async def fetch_new_listings(self) -> list[RawListing]:
        """Fetch newly created pump.fun tokens; empty on failure."""
        try:
            data = await self._make_request(
                "token/mainnet/exchange/pumpfun/new",
                params={"limit": self.listing_limit},
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to fetch pump.fun listings", error=str(e))
            return []

        listings = map_moralis_listings(data)
        logger.info("Fetched pump.fun listings", count=len(listings))
        return listings

    async def holder_stats(self, token_id: str) -> HolderStats | None:
        """Fetch holder statistics; None on failure."""
        try:
            data = await self._make_request(f"token/mainnet/holders/{token_id}")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Failed to fetch holder stats", token_id=token_id, error=str(e)
            )
            return None

        if not isinstance(data, dict):
            return None
        return map_holder_stats(data)

    async def top_holder(self, token_id: str) -> TopHolder | None:
        """Fetch the largest holder; None on failure."""
        try:
            data = await self._make_request(
                f"token/mainnet/{token_id}/top-holders", params={"limit": 10}
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Failed to fetch top holders", token_id=token_id, error=str(e)
            )
            return None

        return map_top_holder(data)

    async def aclose(self) -> None:
        if self._owns_session:
            await self.session.aclose()
