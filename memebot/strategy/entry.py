"""Entry decision for new token observations."""

import structlog

from ..config.strategy import StrategyParameters
from ..core.types import EntryDecision, TokenObservation
from ..filters.scoring import compute_score, filter_reasons

logger = structlog.get_logger(__name__)


def decide(obs: TokenObservation, params: StrategyParameters) -> EntryDecision:
    """Decide whether to open a position on an observation.

    Buys only if every hard filter passes, the score reaches
    ``min_score_to_buy`` and, when required, the token shows momentum or
    graduation. Callers act on the result; nothing is mutated here.
    """
    score = compute_score(obs, params)
    reasons = filter_reasons(obs, params)

    if score < params.min_score_to_buy:
        reasons.append(f"Score too low: {score:.1f} < {params.min_score_to_buy:.1f}")

    if params.require_momentum_or_graduation and not (obs.momentum or obs.graduation):
        reasons.append("No momentum or graduation signal")

    should_buy = not reasons

    logger.debug(
        "Entry decision",
        token_id=obs.id,
        should_buy=should_buy,
        score=score,
        reasons=reasons,
    )

    return EntryDecision(should_buy=should_buy, score=score, reasons=reasons)
