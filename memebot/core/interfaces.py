"""Core interfaces for the memecoin simulator."""

from datetime import datetime
from typing import Protocol, runtime_checkable

from .types import Enrichment, PairInfo, RawListing, TokenObservation, TradeRecord


@runtime_checkable
class DataSource(Protocol):
    """Listing feed plus best-effort per-token enrichment."""

    async def fetch_listings(self) -> list[RawListing]:
        """Fetch the latest listings; may be empty."""
        ...

    async def enrich(self, token_id: str) -> Enrichment:
        """Fetch holder stats, top holder and pair data for a token."""
        ...

    async def fetch_pair(self, token_id: str) -> PairInfo | None:
        """Fetch a fresh liquidity/price snapshot for a token."""
        ...


@runtime_checkable
class Ledger(Protocol):
    """Persisted record of observations and trades."""

    async def upsert_observation(
        self, observation: TokenObservation, score: float
    ) -> None:
        """Store an observation; no-op if the id already exists."""
        ...

    async def append_trade_open(self, record: TradeRecord) -> int:
        """Append a BUY record and return its id."""
        ...

    async def has_open_trade(self, token_id: str) -> bool:
        """Whether the token has a BUY record that was never closed."""
        ...

    async def update_trade_close(
        self,
        token_id: str,
        exit_price: float,
        pnl: float,
        closed_at: datetime,
        reason: str | None = None,
    ) -> None:
        """Close the single open BUY record for a token."""
        ...

    async def append_run_completion(self, timestamp: datetime) -> None:
        """Record that a run finished."""
        ...
