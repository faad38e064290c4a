"""Portfolio simulation loop: ingest, decide, finalize."""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import structlog

from ..config.strategy import StrategyParameters
from ..core.interfaces import DataSource, Ledger
from ..core.types import (
    Enrichment,
    PairInfo,
    Position,
    RawListing,
    SimulationPhase,
    SimulationReport,
    TokenObservation,
    TradeRecord,
)
from ..data.normalize import (
    apply_enrichment,
    derive_signals,
    observation_from_listing,
    refresh_observation,
)
from ..exec.paper import PaperExecutor
from ..risk.portfolio import Portfolio
from ..strategy.entry import decide
from ..strategy.exit import should_exit

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PortfolioSimulator:
    """Drives a single simulated run against one set of strategy parameters.

    The loop is strictly sequential. Observations are decided in ingestion
    order, and after each one every open position is re-checked for exits
    in insertion order. Data-source failures degrade to defaults; ledger
    failures propagate and abort the run.
    """

    def __init__(
        self,
        params: StrategyParameters,
        data_source: DataSource,
        ledger: Ledger,
        executor: PaperExecutor | None = None,
        rng: random.Random | None = None,
        poll_interval_seconds: float = 5.0,
        now_fn: Callable[[], datetime] | None = None,
        clock_fn: Callable[[], float] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize simulator.

        Args:
            params: Strategy parameters for the whole run
            data_source: Listing feed and enrichment source
            ledger: Ledger receiving observations and trades
            executor: Paper executor (built from params and rng if omitted)
            rng: Random source for the default executor
            poll_interval_seconds: Delay between listing polls
            now_fn: Wall clock for ledger timestamps
            clock_fn: Monotonic clock for the ingestion deadline
            sleep_fn: Awaitable sleep used between polls
        """
        self.params = params
        self.data_source = data_source
        self.ledger = ledger
        self.executor = executor or PaperExecutor(params, rng=rng)
        self.poll_interval_seconds = poll_interval_seconds

        self._now_fn = now_fn or _utcnow
        self._clock_fn = clock_fn or time.monotonic
        self._sleep_fn = sleep_fn or asyncio.sleep

        self.portfolio = Portfolio(params.starting_sol_balance, params.max_positions)
        self.phase = SimulationPhase.IDLE
        self.observations_decided = 0

        # Latest observation per open position, base for the next refresh
        self._latest: dict[str, TokenObservation] = {}

    async def run(
        self, duration_seconds: float, target_count: int | None = None
    ) -> SimulationReport:
        """Run ingestion, then decide every observation, then finalize.

        Args:
            duration_seconds: Bound on the ingestion phase
            target_count: Stop ingesting once this many observations exist

        Returns:
            Report of the finished run
        """
        logger.info(
            "Starting simulation",
            preset=self.params.name,
            duration_seconds=duration_seconds,
            target_count=target_count,
            starting_capital=self.portfolio.starting_capital,
        )

        observations = await self.ingest(duration_seconds, target_count)
        await self.decide_all(observations)
        return await self.finalize()

    # Ingesting

    async def ingest(
        self, duration_seconds: float, target_count: int | None = None
    ) -> list[TokenObservation]:
        """Poll the data source until the deadline or target count.

        Stop conditions are checked only between polls and between listings;
        an in-flight fetch always completes.
        """
        self.phase = SimulationPhase.INGESTING
        deadline = self._clock_fn() + duration_seconds
        collected: list[TokenObservation] = []

        def done() -> bool:
            if target_count is not None and len(collected) >= target_count:
                return True
            return self._clock_fn() >= deadline

        polls = 0
        while not done():
            listings = await self._fetch_listings()
            polls += 1
            logger.info("Fetched listings", count=len(listings), poll=polls)

            for listing in listings:
                if done():
                    logger.info("Ingestion limit reached, stopping collection")
                    break
                collected.append(await self.observe(listing))

            if done():
                break
            await self._sleep_fn(self.poll_interval_seconds)

        logger.info("Ingestion finished", observations=len(collected), polls=polls)
        return collected

    async def observe(self, listing: RawListing) -> TokenObservation:
        """Normalize, enrich and derive signals for one listing."""
        obs = observation_from_listing(listing)
        obs = apply_enrichment(obs, await self._enrich(obs.id))
        return derive_signals(obs, self.params)

    async def _fetch_listings(self) -> list[RawListing]:
        try:
            return list(await self.data_source.fetch_listings())
        except Exception as e:
            logger.error("Failed to fetch listings", error=str(e))
            return []

    async def _enrich(self, token_id: str) -> Enrichment:
        try:
            return await self.data_source.enrich(token_id)
        except Exception as e:
            logger.warning("Failed to enrich token", token_id=token_id, error=str(e))
            return Enrichment()

    async def _fetch_pair(self, token_id: str) -> PairInfo | None:
        try:
            return await self.data_source.fetch_pair(token_id)
        except Exception as e:
            logger.warning("Failed to refresh token", token_id=token_id, error=str(e))
            return None

    # Deciding

    async def decide_all(self, observations: list[TokenObservation]) -> None:
        """Decide observations one at a time in arrival order."""
        self.phase = SimulationPhase.DECIDING
        for obs in observations:
            await self.process(obs)

    async def process(self, obs: TokenObservation) -> None:
        """Persist, maybe enter, then check every open position for exit."""
        decision = decide(obs, self.params)
        await self.ledger.upsert_observation(obs, decision.score)
        self.observations_decided += 1

        if decision.should_buy:
            await self._maybe_open(obs, decision.score)
        else:
            logger.debug("Token rejected", token_id=obs.id, reasons=decision.reasons)

        await self._check_exits()

    async def _maybe_open(self, obs: TokenObservation, score: float) -> None:
        allowed, reasons = self.portfolio.can_open(obs.id, self.params.min_trade_sol)
        if not allowed:
            logger.info("Buy skipped", token_id=obs.id, reasons=reasons)
            return

        # Left open by an earlier run against the same ledger
        if await self.ledger.has_open_trade(obs.id):
            logger.info(
                "Buy skipped, ledger already has an open trade", token_id=obs.id
            )
            return

        fill = self.executor.buy(obs.base_price, self.portfolio.available_capital)
        if fill.quantity <= 0:
            logger.info(
                "Buy skipped, no usable price",
                token_id=obs.id,
                base_price=obs.base_price,
            )
            return

        opened_at = self._now_fn()
        entered = obs.model_copy(update={"entry_market_cap": obs.market_cap_usd})
        position = Position(
            token_id=obs.id,
            entry_price=fill.entry_price,
            quantity=fill.quantity,
            usd_invested=fill.usd_invested,
            size_sol=fill.size_sol,
            opened_at=opened_at,
            score_at_entry=score,
            entry_market_cap=entered.entry_market_cap,
            entry_liquidity=entered.liquidity_usd,
            observation=entered,
        )

        await self.ledger.append_trade_open(
            TradeRecord(
                token_id=obs.id,
                entry_price=fill.entry_price,
                quantity=fill.quantity,
                usd_invested=fill.usd_invested,
                opened_at=opened_at,
                score=score,
            )
        )
        self.portfolio.open_position(position)
        self._latest[obs.id] = entered

        logger.info(
            "Position opened",
            token_id=obs.id,
            score=score,
            entry_price=fill.entry_price,
            usd_invested=fill.usd_invested,
            available_capital=self.portfolio.available_capital,
        )

    async def _check_exits(self) -> None:
        """Evaluate exits over a snapshot of open positions, then remove.

        Each exit is settled against capital right after its ledger write;
        removal from the open set waits until the scan is over.
        """
        closing: list[str] = []

        for position in self.portfolio.positions:
            base = self._latest.get(position.token_id, position.observation)
            fresh = refresh_observation(
                base,
                await self._fetch_pair(position.token_id),
                position.entry_liquidity,
                self.params,
            )
            self._latest[position.token_id] = fresh

            decision = should_exit(
                fresh, position.entry_market_cap, position.entry_liquidity, self.params
            )
            if not decision.should_exit:
                continue

            paper_exit = self.executor.sell(
                position.entry_price,
                position.quantity,
                position.usd_invested,
                decision.reason,
            )
            await self.ledger.update_trade_close(
                position.token_id,
                paper_exit.exit_price,
                paper_exit.pnl_usd,
                self._now_fn(),
                decision.reason.value,
            )
            self.portfolio.settle_exit(
                position.token_id, paper_exit.proceeds_sol, paper_exit.pnl_usd
            )
            closing.append(position.token_id)

            logger.info(
                "Position exited",
                token_id=position.token_id,
                reason=decision.reason.value,
                multiplier=round(paper_exit.multiplier, 4),
                pnl_usd=round(paper_exit.pnl_usd, 2),
            )

        for token_id in closing:
            self.portfolio.remove_position(token_id)
            self._latest.pop(token_id, None)

    # Finalizing

    async def finalize(self) -> SimulationReport:
        """Write the run-completion marker and report remaining capital."""
        self.phase = SimulationPhase.FINALIZING
        finished_at = self._now_fn()
        await self.ledger.append_run_completion(finished_at)

        report = SimulationReport(
            starting_capital=self.portfolio.starting_capital,
            available_capital=self.portfolio.available_capital,
            observations=self.observations_decided,
            positions_opened=self.portfolio.opened_count,
            positions_closed=self.portfolio.closed_count,
            open_positions=len(self.portfolio),
            realized_pnl_usd=self.portfolio.realized_pnl_usd,
            finished_at=finished_at,
        )
        self.phase = SimulationPhase.FINISHED

        logger.info(
            "Simulation finished",
            remaining_capital=report.available_capital,
            positions_opened=report.positions_opened,
            positions_closed=report.positions_closed,
            open_positions=report.open_positions,
            realized_pnl_usd=report.realized_pnl_usd,
        )
        return report
