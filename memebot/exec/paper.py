"""Paper execution model for simulated fills."""

import random

import structlog

from ..config.strategy import StrategyParameters
from ..core.types import ExitReason

logger = structlog.get_logger(__name__)


class PaperFill:
    """Result of a simulated buy."""

    def __init__(
        self,
        size_sol: float,
        entry_price: float,
        usd_invested: float,
        quantity: float,
    ) -> None:
        self.size_sol = size_sol
        self.entry_price = entry_price
        self.usd_invested = usd_invested
        self.quantity = quantity


class PaperExit:
    """Result of a simulated sell."""

    def __init__(
        self,
        multiplier: float,
        exit_price: float,
        proceeds_usd: float,
        pnl_usd: float,
        proceeds_sol: float,
    ) -> None:
        self.multiplier = multiplier
        self.exit_price = exit_price
        self.proceeds_usd = proceeds_usd
        self.pnl_usd = pnl_usd
        self.proceeds_sol = proceeds_sol


class PaperExecutor:
    """Simulated execution with random slippage and exit multipliers."""

    def __init__(
        self,
        params: StrategyParameters,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize paper executor.

        Args:
            params: Strategy parameters holding sizes and bands
            rng: Random source (seed it for reproducible runs)
        """
        self.params = params
        self.rng = rng or random.Random()

    def trade_size(self, available_capital: float) -> float:
        """SOL to spend on the next buy."""
        return min(self.params.max_sol_per_trade, available_capital)

    def entry_price(self, base_price: float) -> float:
        """Apply a random slippage multiplier to the quoted price."""
        slippage = self.rng.uniform(
            self.params.slippage_min_pct, self.params.slippage_max_pct
        )
        return base_price * (1.0 + slippage)

    def buy(self, base_price: float, available_capital: float) -> PaperFill:
        """Simulate a buy.

        Args:
            base_price: Quoted price in USD
            available_capital: Capital available in SOL

        Returns:
            Fill with quantity 0 when the entry price is not positive
        """
        size_sol = self.trade_size(available_capital)
        entry_price = self.entry_price(base_price)
        usd_invested = size_sol * self.params.sol_usd_price
        quantity = usd_invested / entry_price if entry_price > 0 else 0.0

        logger.info(
            "Paper buy executed",
            size_sol=size_sol,
            base_price=base_price,
            entry_price=entry_price,
            usd_invested=usd_invested,
            quantity=quantity,
        )

        return PaperFill(
            size_sol=size_sol,
            entry_price=entry_price,
            usd_invested=usd_invested,
            quantity=quantity,
        )

    def exit_multiplier(self, reason: ExitReason) -> float:
        """Draw an exit price multiplier from the reason's range."""
        low, high = self.params.exit_range(reason)
        return self.rng.uniform(low, high)

    def sell(
        self,
        entry_price: float,
        quantity: float,
        usd_invested: float,
        reason: ExitReason,
    ) -> PaperExit:
        """Simulate closing a whole position.

        Args:
            entry_price: Position entry price in USD
            quantity: Position quantity
            usd_invested: USD spent opening the position
            reason: Exit rule that fired

        Returns:
            Exit with price, proceeds and realized P&L
        """
        multiplier = self.exit_multiplier(reason)
        exit_price = entry_price * multiplier
        proceeds_usd = quantity * exit_price
        pnl_usd = proceeds_usd - usd_invested
        proceeds_sol = proceeds_usd / self.params.sol_usd_price

        logger.info(
            "Paper sell executed",
            reason=reason.value,
            multiplier=multiplier,
            exit_price=exit_price,
            proceeds_usd=proceeds_usd,
            pnl_usd=pnl_usd,
        )

        return PaperExit(
            multiplier=multiplier,
            exit_price=exit_price,
            proceeds_usd=proceeds_usd,
            pnl_usd=pnl_usd,
            proceeds_sol=proceeds_sol,
        )
