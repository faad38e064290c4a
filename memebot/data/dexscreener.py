"""DexScreener data source for pair liquidity lookups."""

from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.types import PairInfo

logger = structlog.get_logger(__name__)


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def map_dexscreener_pair(pair: dict[str, Any]) -> PairInfo:
    """Map a DexScreener pair object to PairInfo.

    Args:
        pair: Raw pair object

    Returns:
        PairInfo with unparseable fields left as None
    """
    liquidity = pair.get("liquidity")
    liquidity_usd = (
        _optional_float(liquidity.get("usd")) if isinstance(liquidity, dict) else None
    )

    market_cap = pair.get("marketCap")
    if market_cap is None:
        market_cap = pair.get("fdv")

    return PairInfo(
        liquidity_usd=liquidity_usd,
        price_usd=_optional_float(pair.get("priceUsd")),
        market_cap_usd=_optional_float(market_cap),
        dex_id=pair.get("dexId"),
    )


def first_solana_pair(data: dict[str, Any] | list[Any]) -> PairInfo | None:
    """Pick the first Solana pair from a DexScreener token response."""
    pairs = data.get("pairs") if isinstance(data, dict) else data
    if not pairs:
        return None

    for pair in pairs:
        if not isinstance(pair, dict):
            continue
        chain = pair.get("chainId")
        if chain is None or chain == "solana":
            return map_dexscreener_pair(pair)
    return None


class DexScreenerLookup:
    """DexScreener API client for per-token pair lookups."""

    def __init__(
        self,
        base_url: str = "https://api.dexscreener.com/latest/dex",
        session: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
    ) -> None:
        """Initialize DexScreener lookup.

        Args:
            base_url: DexScreener API base URL
            session: Optional httpx client session
            timeout_seconds: Request timeout
            max_attempts: Attempts per request on network errors
        """
        self.base_url = base_url.rstrip("/")
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

    async def _make_request(self, endpoint: str) -> Any:
        """Make HTTP request with retries on network errors.

        Raises:
            httpx.HTTPError: On HTTP errors or when all retries are exhausted
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        async for attempt in self.retry_config:
            with attempt:
                try:
                    response = await self.session.get(
                        url, timeout=self.timeout_seconds
                    )
                    response.raise_for_status()
                    return response.json()
                except (httpx.NetworkError, httpx.TimeoutException) as e:
                    logger.warning(
                        "Network error in DexScreener request",
                        endpoint=endpoint,
                        error=str(e),
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise

    async def lookup_pair(self, token_id: str) -> PairInfo | None:
        """Look up the primary pair for a token.

        Args:
            token_id: Token mint address

        Returns:
            PairInfo or None if not found or on any failure
        """
        try:
            data = await self._make_request(f"tokens/{token_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.info("Token not found", token_id=token_id)
            else:
                logger.error(
                    "HTTP error in pair lookup", token_id=token_id, error=str(e)
                )
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to lookup pair", token_id=token_id, error=str(e))
            return None

        pair = first_solana_pair(data)
        if pair is None:
            logger.debug("No pairs for token", token_id=token_id)
        return pair

    async def aclose(self) -> None:
        if self._owns_session:
            await self.session.aclose()
