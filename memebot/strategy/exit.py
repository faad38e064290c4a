"""Exit rules for open positions."""

import structlog

from ..config.strategy import StrategyParameters
from ..core.types import ExitDecision, ExitReason, TokenObservation

logger = structlog.get_logger(__name__)


def should_exit(
    obs: TokenObservation,
    entry_market_cap: float,
    entry_liquidity: float,
    params: StrategyParameters,
) -> ExitDecision:
    """Evaluate exit rules against a fresh observation.

    Rules run in fixed priority order and the first match wins:
    stop loss, profit target, liquidity spike, graduation.

    Args:
        obs: Fresh observation for the position's token
        entry_market_cap: Market cap when the position opened
        entry_liquidity: Liquidity when the position opened
        params: Strategy parameters

    Returns:
        Exit decision with at most one reason
    """
    reason = _first_triggered(obs, entry_market_cap, entry_liquidity, params)

    if reason is None:
        return ExitDecision(should_exit=False)

    logger.debug(
        "Exit rule triggered",
        token_id=obs.id,
        reason=reason.value,
        market_cap_usd=obs.market_cap_usd,
        entry_market_cap=entry_market_cap,
        liquidity_usd=obs.liquidity_usd,
        entry_liquidity=entry_liquidity,
    )
    return ExitDecision(should_exit=True, reason=reason)


def _first_triggered(
    obs: TokenObservation,
    entry_market_cap: float,
    entry_liquidity: float,
    params: StrategyParameters,
) -> ExitReason | None:
    if obs.market_cap_usd < entry_market_cap * (1.0 - params.stop_loss_pct):
        return ExitReason.STOP_LOSS

    # Profit is undefined without an entry market cap
    if entry_market_cap > 0:
        profit_pct = (obs.market_cap_usd - entry_market_cap) / entry_market_cap
        if params.min_profit_target_pct <= profit_pct <= params.max_profit_target_pct:
            return ExitReason.PROFIT_TARGET

    if obs.raydium_lp_detected or (
        entry_liquidity > 0
        and obs.liquidity_usd > entry_liquidity * params.lp_spike_exit_multiplier
    ):
        return ExitReason.LP_SPIKE

    if obs.graduation:
        return ExitReason.GRADUATION

    return None
