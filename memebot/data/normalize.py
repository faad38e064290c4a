"""Normalization of raw listings and enrichment into TokenObservations."""

from typing import Any

from ..config.strategy import StrategyParameters
from ..core.types import Enrichment, PairInfo, RawListing, TokenObservation


def parse_number(value: Any) -> float:
    """Parse a feed number; missing, unparseable or negative values become 0."""
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number or number < 0:  # NaN
        return 0.0
    return number


def observation_from_listing(
    listing: RawListing, category: str = "pumpfun"
) -> TokenObservation:
    """Build an observation from a listing; every other field defaults."""
    return TokenObservation(
        id=listing.token_address,
        category=category,
        market_cap_usd=parse_number(listing.fully_diluted_valuation),
        base_price=parse_number(listing.price_usd),
    )


def apply_enrichment(obs: TokenObservation, enrichment: Enrichment) -> TokenObservation:
    """Fold best-effort secondary data into an observation.

    The largest holder is taken to be the creator. Pair price only fills a
    missing base price.
    """
    update: dict[str, Any] = {}

    if enrichment.holder_stats and enrichment.holder_stats.total is not None:
        update["holder_count"] = max(0, enrichment.holder_stats.total)

    if enrichment.top_holder:
        update["dev_hold_pct"] = min(
            100.0, parse_number(enrichment.top_holder.percentage)
        )
        update["dev_wallet_address"] = enrichment.top_holder.owner_address

    if enrichment.pair:
        update["liquidity_usd"] = parse_number(enrichment.pair.liquidity_usd)
        if obs.base_price <= 0:
            update["base_price"] = parse_number(enrichment.pair.price_usd)

    return obs.model_copy(update=update) if update else obs


def derive_signals(
    obs: TokenObservation, params: StrategyParameters
) -> TokenObservation:
    """Set momentum and graduation from liquidity and market cap thresholds."""
    momentum = obs.liquidity_usd > params.momentum_liquidity_usd
    graduation = (
        params.graduation_min_market_cap_usd
        <= obs.market_cap_usd
        <= params.graduation_max_market_cap_usd
        and momentum
    )
    return obs.model_copy(update={"momentum": momentum, "graduation": graduation})


def refresh_observation(
    obs: TokenObservation,
    pair: PairInfo | None,
    entry_liquidity: float,
    params: StrategyParameters,
) -> TokenObservation:
    """Produce a fresh observation for an open position from a pair lookup.

    Without a pair the previous values stand. A Raydium pool is flagged when
    reported liquidity exceeds ``lp_spike_exit_multiplier`` times the
    liquidity at entry.
    """
    if pair is None:
        return obs

    update: dict[str, Any] = {}
    if pair.liquidity_usd is not None:
        liquidity = parse_number(pair.liquidity_usd)
        update["liquidity_usd"] = liquidity
        if liquidity > entry_liquidity * params.lp_spike_exit_multiplier:
            update["raydium_lp_detected"] = True
    if pair.price_usd is not None:
        update["base_price"] = parse_number(pair.price_usd)
    if pair.market_cap_usd is not None:
        update["market_cap_usd"] = parse_number(pair.market_cap_usd)

    return derive_signals(obs.model_copy(update=update), params)
