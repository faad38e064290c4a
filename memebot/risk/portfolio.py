"""Simulated portfolio bookkeeping."""

import structlog

from ..core.errors import PortfolioError
from ..core.types import Position

logger = structlog.get_logger(__name__)


class Portfolio:
    """Available capital plus the insertion-ordered set of open positions.

    Invariants: at most ``max_positions`` open positions, at most one per
    token, and ``available_capital`` never below zero.
    """

    def __init__(self, starting_capital: float, max_positions: int) -> None:
        """Initialize portfolio.

        Args:
            starting_capital: Starting balance in SOL
            max_positions: Maximum number of concurrent positions
        """
        if starting_capital < 0:
            raise PortfolioError("Starting capital cannot be negative")
        if max_positions < 1:
            raise PortfolioError("max_positions must be at least 1")

        self.starting_capital = starting_capital
        self.available_capital = starting_capital
        self.max_positions = max_positions
        self.realized_pnl_usd = 0.0
        self.opened_count = 0
        self.closed_count = 0

        self._positions: dict[str, Position] = {}
        self._settled: set[str] = set()

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, token_id: str) -> bool:
        return token_id in self._positions

    @property
    def positions(self) -> list[Position]:
        """Open positions in insertion order (a copy)."""
        return list(self._positions.values())

    def get(self, token_id: str) -> Position | None:
        return self._positions.get(token_id)

    def has_capacity(self) -> bool:
        return len(self._positions) < self.max_positions

    def can_open(self, token_id: str, min_trade_sol: float) -> tuple[bool, list[str]]:
        """Check if a new position can be opened.

        Args:
            token_id: Token identifier
            min_trade_sol: Capital that must be exceeded to trade

        Returns:
            Tuple of (allowed, list of reasons)
        """
        reasons = []

        if self.available_capital <= min_trade_sol:
            reasons.append(
                f"Insufficient capital: {self.available_capital:.4f} SOL "
                f"<= {min_trade_sol} SOL"
            )

        if not self.has_capacity():
            reasons.append("Maximum concurrent positions reached")

        if token_id in self._positions:
            reasons.append("Already have position in this token")

        return not reasons, reasons

    def open_position(self, position: Position) -> None:
        """Debit capital and add a position.

        Raises:
            PortfolioError: If the position would break an invariant
        """
        if position.token_id in self._positions:
            raise PortfolioError(f"Position already open for {position.token_id}")
        if not self.has_capacity():
            raise PortfolioError(
                f"Cannot exceed {self.max_positions} concurrent positions"
            )
        if position.size_sol > self.available_capital:
            raise PortfolioError(
                f"Position size {position.size_sol} SOL exceeds available "
                f"capital {self.available_capital} SOL"
            )

        self.available_capital -= position.size_sol
        self._positions[position.token_id] = position
        self.opened_count += 1

        logger.info(
            "Recorded new position",
            token_id=position.token_id,
            size_sol=position.size_sol,
            available_capital=self.available_capital,
            active_positions=len(self._positions),
        )

    def settle_exit(self, token_id: str, proceeds_sol: float, pnl_usd: float) -> None:
        """Credit the proceeds of a closed position.

        The position stays in the open set until ``remove_position`` so a
        scan over open positions can settle exits as it goes.

        Raises:
            PortfolioError: If no position is open for the token, or it was
                already settled
        """
        if token_id not in self._positions:
            raise PortfolioError(f"No open position for {token_id}")
        if token_id in self._settled:
            raise PortfolioError(f"Position for {token_id} already settled")

        self._settled.add(token_id)
        self.available_capital += max(0.0, proceeds_sol)
        self.realized_pnl_usd += pnl_usd
        self.closed_count += 1

        logger.info(
            "Settled position exit",
            token_id=token_id,
            proceeds_sol=proceeds_sol,
            pnl_usd=pnl_usd,
            available_capital=self.available_capital,
        )

    def remove_position(self, token_id: str) -> Position:
        """Remove a settled position from the open set.

        Raises:
            PortfolioError: If the position is not open or not yet settled
        """
        if token_id not in self._settled:
            raise PortfolioError(f"Position for {token_id} has not been settled")

        self._settled.discard(token_id)
        position = self._positions.pop(token_id)

        logger.debug(
            "Removed position",
            token_id=token_id,
            active_positions=len(self._positions),
        )
        return position

    def get_state_summary(self) -> dict:
        """Get current portfolio state summary."""
        return {
            "starting_capital": self.starting_capital,
            "available_capital": self.available_capital,
            "active_positions": len(self._positions),
            "max_positions": self.max_positions,
            "opened": self.opened_count,
            "closed": self.closed_count,
            "realized_pnl_usd": self.realized_pnl_usd,
        }
