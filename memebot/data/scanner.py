"""Composite data source over Moralis and DexScreener."""

import structlog

from ..core.interfaces import DataSource
from ..core.types import Enrichment, PairInfo, RawListing
from .dexscreener import DexScreenerLookup
from .moralis import MoralisClient

logger = structlog.get_logger(__name__)


class Scanner(DataSource):
    """Listing feed from Moralis, enrichment from Moralis and DexScreener."""

    def __init__(self, moralis: MoralisClient, dexscreener: DexScreenerLookup) -> None:
        self.moralis = moralis
        self.dexscreener = dexscreener

    async def fetch_listings(self) -> list[RawListing]:
        return await self.moralis.fetch_new_listings()

    async def enrich(self, token_id: str) -> Enrichment:
        """Fetch holder stats, top holder and pair; each part may be None."""
        enrichment = Enrichment(
            holder_stats=await self.moralis.holder_stats(token_id),
            top_holder=await self.moralis.top_holder(token_id),
            pair=await self.dexscreener.lookup_pair(token_id),
        )

        logger.debug(
            "Enriched token",
            token_id=token_id,
            has_holder_stats=enrichment.holder_stats is not None,
            has_top_holder=enrichment.top_holder is not None,
            has_pair=enrichment.pair is not None,
        )
        return enrichment

    async def fetch_pair(self, token_id: str) -> PairInfo | None:
        return await self.dexscreener.lookup_pair(token_id)

    async def aclose(self) -> None:
        await self.moralis.aclose()
        await self.dexscreener.aclose()
