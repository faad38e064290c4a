"""Core data types for the memecoin simulator."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TokenObservation(BaseModel):
    """One snapshot of a token's observable state."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Stable token identifier (mint address)")
    category: str = Field(default="unknown", description="Category label")
    market_cap_usd: float = Field(default=0.0, ge=0, description="Market cap in USD")
    dev_hold_pct: float = Field(
        default=0.0, ge=0, le=100, description="Share of supply held by the creator"
    )
    liquidity_usd: float = Field(default=0.0, ge=0, description="Liquidity in USD")
    holder_count: int = Field(default=0, ge=0, description="Number of holders")
    upgradeable: bool = Field(default=False, description="Token program is upgradeable")
    freeze_authority: bool = Field(
        default=False, description="Mint has a freeze authority"
    )
    momentum: bool = Field(default=False, description="Momentum signal")
    graduation: bool = Field(default=False, description="Graduation signal")
    base_price: float = Field(default=0.0, ge=0, description="Quoted price in USD")
    dev_wallet_address: str | None = Field(
        default=None, description="Creator wallet address"
    )
    is_dev_known_rugger: bool = Field(
        default=False, description="Creator wallet is flagged as a rugger"
    )
    entry_market_cap: float = Field(
        default=0.0, ge=0, description="Market cap at position entry"
    )
    raydium_lp_detected: bool = Field(
        default=False, description="A Raydium liquidity pool was detected"
    )


class RawListing(BaseModel):
    """Listing as returned by a listing feed, before normalization."""

    token_address: str = Field(description="Token mint address")
    name: str | None = Field(default=None, description="Token name")
    symbol: str | None = Field(default=None, description="Token symbol")
    price_usd: str | None = Field(default=None, description="Price in USD")
    liquidity: str | None = Field(default=None, description="Liquidity in USD")
    fully_diluted_valuation: str | None = Field(
        default=None, description="Fully diluted valuation in USD"
    )
    created_at: str | None = Field(default=None, description="Listing timestamp")


class HolderStats(BaseModel):
    """Holder statistics for a token."""

    total: int | None = Field(default=None, description="Total holder count")


class TopHolder(BaseModel):
    """Largest holder of a token."""

    owner_address: str | None = Field(default=None, description="Holder wallet")
    percentage: float | None = Field(
        default=None, description="Percentage of total supply held"
    )


class PairInfo(BaseModel):
    """Liquidity pair snapshot for a token."""

    liquidity_usd: float | None = Field(default=None, description="Liquidity in USD")
    price_usd: float | None = Field(default=None, description="Price in USD")
    market_cap_usd: float | None = Field(default=None, description="Market cap in USD")
    dex_id: str | None = Field(default=None, description="DEX identifier")


class Enrichment(BaseModel):
    """Best-effort secondary data for a token; each part may be missing."""

    holder_stats: HolderStats | None = None
    top_holder: TopHolder | None = None
    pair: PairInfo | None = None


class ExitReason(str, Enum):
    """Reason a position was closed."""

    STOP_LOSS = "stop_loss"
    PROFIT_TARGET = "profit_target"
    LP_SPIKE = "lp_spike"
    GRADUATION = "graduation"


class EntryDecision(BaseModel):
    """Entry decision for an observation."""

    should_buy: bool = Field(description="Whether a position should be opened")
    score: float = Field(description="Heuristic score (0-100)")
    reasons: list[str] = Field(default_factory=list, description="Refusal reasons")


class ExitDecision(BaseModel):
    """Exit decision for an open position."""

    should_exit: bool = Field(description="Whether the position should be closed")
    reason: ExitReason | None = Field(default=None, description="Triggered rule")


class Position(BaseModel):
    """Open simulated position."""

    model_config = ConfigDict(frozen=True)

    token_id: str = Field(description="Token identifier")
    entry_price: float = Field(gt=0, description="Entry price in USD")
    quantity: float = Field(gt=0, description="Token quantity")
    usd_invested: float = Field(gt=0, description="USD spent")
    size_sol: float = Field(gt=0, description="Capital debited in SOL")
    opened_at: datetime = Field(description="Open timestamp")
    score_at_entry: float = Field(description="Score when opened")
    entry_market_cap: float = Field(ge=0, description="Market cap at entry")
    entry_liquidity: float = Field(ge=0, description="Liquidity at entry")
    observation: TokenObservation = Field(description="Observation at entry")


class TradeRecord(BaseModel):
    """Ledger trade row; SELL fields stay empty while the position is open."""

    id: int | None = Field(default=None, description="Ledger row id")
    token_id: str = Field(description="Token identifier")
    action: str = Field(default="BUY", description="BUY while open, SELL once closed")
    entry_price: float = Field(description="Entry price in USD")
    quantity: float = Field(description="Token quantity")
    usd_invested: float = Field(description="USD spent")
    opened_at: datetime = Field(description="Open timestamp")
    score: float = Field(description="Score at entry")
    exit_price: float | None = Field(default=None, description="Exit price in USD")
    realized_pnl: float | None = Field(default=None, description="Realized P&L in USD")
    closed_at: datetime | None = Field(default=None, description="Close timestamp")
    exit_reason: str | None = Field(default=None, description="Exit rule")

    @property
    def is_open(self) -> bool:
        return self.exit_price is None


class SimulationPhase(str, Enum):
    """Phase of a simulation run."""

    IDLE = "idle"
    INGESTING = "ingesting"
    DECIDING = "deciding"
    FINALIZING = "finalizing"
    FINISHED = "finished"


class SimulationReport(BaseModel):
    """Summary of a finished run."""

    starting_capital: float = Field(description="Capital at start in SOL")
    available_capital: float = Field(description="Capital at end in SOL")
    observations: int = Field(description="Observations decided")
    positions_opened: int = Field(description="Positions opened")
    positions_closed: int = Field(description="Positions closed")
    open_positions: int = Field(description="Positions still open")
    realized_pnl_usd: float = Field(description="Realized P&L in USD")
    finished_at: datetime = Field(description="Completion timestamp")
