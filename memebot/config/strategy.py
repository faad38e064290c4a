"""Strategy parameters and named presets.

All filter thresholds, scoring weights, exit rules and portfolio limits live
here. A run resolves one preset up front and passes it explicitly to every
component; presets are alternative value sets, never subclasses.
"""

from collections.abc import Callable

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.errors import ConfigurationError
from ..core.types import ExitReason

logger = structlog.get_logger(__name__)


class StrategyParameters(BaseModel):
    """Immutable thresholds and weights for one simulation run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="default", description="Preset name")

    # Entry filters
    min_market_cap_usd: float = Field(default=5_000.0, ge=0)
    max_market_cap_usd: float = Field(default=300_000.0, ge=0)
    min_holders: int = Field(default=10, ge=0)
    max_dev_hold_pct: float = Field(default=15.0, ge=0, le=100)
    min_liquidity_usd: float = Field(default=1_000.0, ge=0)
    reject_upgradeable: bool = True
    reject_freeze_authority: bool = True
    min_score_to_buy: float = Field(default=75.0, ge=0, le=100)
    require_momentum_or_graduation: bool = True

    # Scoring weights
    low_dev_hold_bonus: float = Field(default=10.0, ge=0)
    high_dev_hold_penalty_multiplier: float = Field(default=4.0, ge=0)
    liquidity_bonus_divisor: float = Field(default=1_000.0, gt=0)
    sweet_spot_min_market_cap_usd: float = Field(default=50_000.0, ge=0)
    sweet_spot_max_market_cap_usd: float = Field(default=250_000.0, ge=0)
    market_cap_sweet_spot_bonus: float = Field(default=15.0, ge=0)
    near_sweet_spot_bonus: float = Field(default=5.0, ge=0)
    momentum_bonus: float = Field(default=20.0, ge=0)
    graduation_bonus: float = Field(default=25.0, ge=0)
    upgradeable_penalty: float = Field(default=20.0, ge=0)
    freeze_authority_penalty: float = Field(default=15.0, ge=0)

    # Signal derivation
    momentum_liquidity_usd: float = Field(default=1_000.0, ge=0)
    graduation_min_market_cap_usd: float = Field(default=50_000.0, ge=0)
    graduation_max_market_cap_usd: float = Field(default=300_000.0, ge=0)

    # Exit rules
    stop_loss_pct: float = Field(default=0.2, ge=0, lt=1)
    min_profit_target_pct: float = Field(default=0.5, ge=0)
    max_profit_target_pct: float = Field(default=1.0, ge=0)
    lp_spike_exit_multiplier: float = Field(default=2.0, gt=0)

    # Portfolio rules
    max_positions: int = Field(default=5, ge=1)
    max_sol_per_trade: float = Field(default=0.5, gt=0)
    min_trade_sol: float = Field(default=0.01, ge=0)
    starting_sol_balance: float = Field(default=3.0, ge=0)
    sol_usd_price: float = Field(default=30.0, gt=0)

    # Simulated execution
    slippage_min_pct: float = Field(default=0.0, ge=0)
    slippage_max_pct: float = Field(default=0.05, ge=0)
    stop_loss_exit_range: tuple[float, float] = (0.6, 0.8)
    profit_target_exit_range: tuple[float, float] = (1.5, 2.5)
    lp_spike_exit_range: tuple[float, float] = (1.3, 3.0)
    graduation_exit_range: tuple[float, float] = (1.5, 3.0)

    @model_validator(mode="after")
    def _check_ranges(self) -> "StrategyParameters":
        pairs = [
            ("min_market_cap_usd", "max_market_cap_usd"),
            ("sweet_spot_min_market_cap_usd", "sweet_spot_max_market_cap_usd"),
            ("graduation_min_market_cap_usd", "graduation_max_market_cap_usd"),
            ("min_profit_target_pct", "max_profit_target_pct"),
            ("slippage_min_pct", "slippage_max_pct"),
        ]
        for low_name, high_name in pairs:
            if getattr(self, low_name) > getattr(self, high_name):
                raise ValueError(f"{low_name} must not exceed {high_name}")

        for reason in ExitReason:
            low, high = self.exit_range(reason)
            if low < 0 or low > high:
                raise ValueError(
                    f"{reason.value}_exit_range must be a non-negative (low, high) pair"
                )
        return self

    def exit_range(self, reason: ExitReason) -> tuple[float, float]:
        """Exit price multiplier range for an exit reason."""
        return getattr(self, f"{reason.value}_exit_range")


def default() -> StrategyParameters:
    """Balanced defaults."""
    return StrategyParameters()


def early_snipe() -> StrategyParameters:
    """Catch tokens right at launch."""
    return StrategyParameters(
        name="early_snipe",
        min_market_cap_usd=1_000.0,
        min_holders=5,
        min_liquidity_usd=500.0,
        min_score_to_buy=65.0,
    )


def conservative() -> StrategyParameters:
    """Safer, more established tokens."""
    return StrategyParameters(
        name="conservative",
        min_market_cap_usd=50_000.0,
        min_holders=200,
        max_dev_hold_pct=10.0,
        min_liquidity_usd=5_000.0,
        min_score_to_buy=80.0,
    )


def aggressive() -> StrategyParameters:
    """Looser filters and more concurrent positions."""
    return StrategyParameters(
        name="aggressive",
        min_market_cap_usd=2_000.0,
        min_holders=3,
        max_dev_hold_pct=20.0,
        min_liquidity_usd=300.0,
        min_score_to_buy=60.0,
        max_positions=10,
    )


PRESETS: dict[str, Callable[[], StrategyParameters]] = {
    "default": default,
    "early_snipe": early_snipe,
    "conservative": conservative,
    "aggressive": aggressive,
}


def get_preset(name: str) -> StrategyParameters:
    """Resolve a preset by name.

    Raises:
        ConfigurationError: If the preset is unknown
    """
    factory = PRESETS.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown strategy preset: {name}. Must be one of: {', '.join(PRESETS)}"
        )

    params = factory()
    logger.info(
        "Strategy preset selected",
        preset=name,
        min_score_to_buy=params.min_score_to_buy,
        max_positions=params.max_positions,
    )
    return params
