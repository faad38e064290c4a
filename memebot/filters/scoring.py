"""Heuristic token scoring and hard entry filters."""

import structlog

from ..config.strategy import StrategyParameters
from ..core.types import TokenObservation

logger = structlog.get_logger(__name__)

MAX_HOLDER_BONUS = 30.0
MAX_LIQUIDITY_BONUS = 25.0
DEV_HOLD_PENALTY_FLOOR_PCT = 10.0
DEV_HOLD_BONUS_CEILING_PCT = 5.0


def compute_score(obs: TokenObservation, params: StrategyParameters) -> float:
    """Score an observation from 0 to 100.

    A known rugger scores 0 regardless of every other field. Otherwise the
    score starts at 50 and is adjusted by holders, dev hold, liquidity,
    market cap, safety flags and momentum/graduation signals, then clamped.
    """
    if obs.is_dev_known_rugger:
        return 0.0

    score = 50.0

    # Holders
    if obs.holder_count >= params.min_holders:
        score += min((obs.holder_count - params.min_holders) / 50.0, MAX_HOLDER_BONUS)
    else:
        score -= (params.min_holders - obs.holder_count) / 10.0

    # Dev hold
    if obs.dev_hold_pct > params.max_dev_hold_pct:
        score -= 100.0
    elif obs.dev_hold_pct > DEV_HOLD_PENALTY_FLOOR_PCT:
        score -= (
            obs.dev_hold_pct - DEV_HOLD_PENALTY_FLOOR_PCT
        ) * params.high_dev_hold_penalty_multiplier
    elif obs.dev_hold_pct < DEV_HOLD_BONUS_CEILING_PCT:
        score += params.low_dev_hold_bonus

    liquidity_bonus = obs.liquidity_usd / params.liquidity_bonus_divisor
    score += min(liquidity_bonus, MAX_LIQUIDITY_BONUS)

    # Market cap sweet spot
    if (
        params.sweet_spot_min_market_cap_usd
        <= obs.market_cap_usd
        <= params.sweet_spot_max_market_cap_usd
    ):
        score += params.market_cap_sweet_spot_bonus
    elif params.sweet_spot_max_market_cap_usd < obs.market_cap_usd <= (
        params.max_market_cap_usd
    ):
        score += params.near_sweet_spot_bonus

    if obs.upgradeable:
        score -= params.upgradeable_penalty
    if obs.freeze_authority:
        score -= params.freeze_authority_penalty

    if obs.momentum:
        score += params.momentum_bonus
    if obs.graduation:
        score += params.graduation_bonus

    return max(0.0, min(100.0, score))


def filter_reasons(obs: TokenObservation, params: StrategyParameters) -> list[str]:
    """List every hard filter the observation fails; empty if it passes."""
    if obs.is_dev_known_rugger:
        return ["Dev wallet is a known rugger"]

    reasons = []

    if obs.market_cap_usd < params.min_market_cap_usd:
        reasons.append(
            f"Market cap too low: ${obs.market_cap_usd:.2f} < "
            f"${params.min_market_cap_usd:.2f}"
        )
    elif obs.market_cap_usd > params.max_market_cap_usd:
        reasons.append(
            f"Market cap too high: ${obs.market_cap_usd:.2f} > "
            f"${params.max_market_cap_usd:.2f}"
        )

    if obs.holder_count < params.min_holders:
        reasons.append(f"Too few holders: {obs.holder_count} < {params.min_holders}")

    if obs.dev_hold_pct >= params.max_dev_hold_pct:
        reasons.append(
            f"Dev hold too high: {obs.dev_hold_pct:.1f}% >= {params.max_dev_hold_pct}%"
        )

    if params.reject_upgradeable and obs.upgradeable:
        reasons.append("Token is upgradeable")

    if params.reject_freeze_authority and obs.freeze_authority:
        reasons.append("Token has freeze authority")

    return reasons


def passes_basic_filters(obs: TokenObservation, params: StrategyParameters) -> bool:
    """Return True if the observation passes every hard filter."""
    reasons = filter_reasons(obs, params)

    logger.debug(
        "Basic filter evaluation",
        token_id=obs.id,
        accepted=not reasons,
        reasons=reasons,
    )

    return not reasons
