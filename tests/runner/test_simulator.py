"""Tests for the portfolio simulator."""

import random
import tempfile
from datetime import UTC, datetime
from pathlib import Path

import pytest

from memebot.config.strategy import StrategyParameters
from memebot.core.errors import LedgerError
from memebot.core.interfaces import DataSource, Ledger
from memebot.core.types import (
    Enrichment,
    HolderStats,
    PairInfo,
    RawListing,
    SimulationPhase,
    TokenObservation,
    TopHolder,
    TradeRecord,
)
from memebot.exec.paper import PaperExecutor
from memebot.persist.storage import SQLiteLedger
from memebot.runner.simulator import PortfolioSimulator

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def listing(token_id: str, price: str = "0.001", fdv: str = "40000") -> RawListing:
    return RawListing(
        token_address=token_id, price_usd=price, fully_diluted_valuation=fdv
    )


def strong_enrichment() -> Enrichment:
    # Scores 89.8 at a 40k market cap: momentum, no graduation
    return Enrichment(
        holder_stats=HolderStats(total=250),
        top_holder=TopHolder(owner_address="DevWallet", percentage=3.0),
        pair=PairInfo(liquidity_usd=5_000.0, dex_id="pumpfun"),
    )


class MockDataSource(DataSource):
    """Mock data source with scripted listings and pair lookups."""

    def __init__(
        self,
        batches: list[list[RawListing]] | None = None,
        enrichments: dict[str, Enrichment] | None = None,
        pairs: dict[str, list[PairInfo | None]] | None = None,
        fail_listings: int = 0,
        fail_enrich: bool = False,
        fail_pairs: bool = False,
    ):
        self.batches = list(batches or [])
        self.enrichments = enrichments or {}
        self.pairs = {token: list(seq) for token, seq in (pairs or {}).items()}
        self.fail_listings = fail_listings
        self.fail_enrich = fail_enrich
        self.fail_pairs = fail_pairs
        self.poll_count = 0
        self.enriched: list[str] = []
        self.pair_lookups: list[str] = []

    async def fetch_listings(self) -> list[RawListing]:
        self.poll_count += 1
        if self.fail_listings:
            self.fail_listings -= 1
            raise ConnectionError("feed down")
        return self.batches.pop(0) if self.batches else []

    async def enrich(self, token_id: str) -> Enrichment:
        self.enriched.append(token_id)
        if self.fail_enrich:
            raise TimeoutError("enrichment timed out")
        return self.enrichments.get(token_id, Enrichment())

    async def fetch_pair(self, token_id: str) -> PairInfo | None:
        self.pair_lookups.append(token_id)
        if self.fail_pairs:
            raise ConnectionError("pair lookup failed")
        seq = self.pairs.get(token_id)
        return seq.pop(0) if seq else None


class MockLedger(Ledger):
    """Mock ledger recording every write in order."""

    def __init__(self, fail_on: str | None = None, fail_token: str | None = None):
        self.fail_on = fail_on
        self.fail_token = fail_token
        self.events: list[tuple] = []
        self.open_tokens: set[str] = set()
        self.next_id = 1

    def _check(self, op: str, token_id: str | None = None) -> None:
        if self.fail_on == op and self.fail_token in (None, token_id):
            raise LedgerError(f"{op} failed")

    async def upsert_observation(self, observation: TokenObservation, score: float):
        self._check("upsert", observation.id)
        self.events.append(("upsert", observation.id, score))

    async def has_open_trade(self, token_id: str) -> bool:
        return token_id in self.open_tokens

    async def append_trade_open(self, record: TradeRecord) -> int:
        self._check("open", record.token_id)
        self.events.append(("open", record.token_id, record))
        self.open_tokens.add(record.token_id)
        self.next_id += 1
        return self.next_id - 1

    async def update_trade_close(
        self, token_id, exit_price, pnl, closed_at, reason=None
    ):
        self._check("close", token_id)
        self.events.append(("close", token_id, reason, exit_price, pnl))
        self.open_tokens.discard(token_id)

    async def append_run_completion(self, timestamp: datetime) -> None:
        self._check("run")
        self.events.append(("run", timestamp))

    def kinds(self) -> list[tuple[str, str]]:
        return [(event[0], event[1]) for event in self.events if event[0] != "run"]


class FakeClock:
    """Monotonic clock advanced only by sleeping."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_simulator(
    data_source: MockDataSource,
    ledger: MockLedger | None = None,
    params: StrategyParameters | None = None,
    clock: FakeClock | None = None,
) -> PortfolioSimulator:
    params = params or StrategyParameters()
    clock = clock or FakeClock()
    return PortfolioSimulator(
        params=params,
        data_source=data_source,
        ledger=ledger or MockLedger(),
        executor=PaperExecutor(params, rng=random.Random(1234)),
        poll_interval_seconds=5.0,
        now_fn=lambda: NOW,
        clock_fn=clock,
        sleep_fn=clock.sleep,
    )


class TestEntries:
    """Test observation processing and position entry."""

    @pytest.mark.asyncio
    async def test_strong_token_is_bought(self):
        """Test a strong token is persisted, bought and recorded."""
        source = MockDataSource(
            batches=[[listing("a")]], enrichments={"a": strong_enrichment()}
        )
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        report = await simulator.run(duration_seconds=60, target_count=1)

        assert ledger.kinds() == [("upsert", "a"), ("open", "a")]
        assert ledger.events[-1] == ("run", NOW)
        record = ledger.events[1][2]
        assert record.usd_invested == pytest.approx(15.0)
        assert record.opened_at == NOW
        assert record.score == pytest.approx(89.8)

        position = simulator.portfolio.get("a")
        assert position.entry_market_cap == 40_000.0
        assert position.entry_liquidity == 5_000.0
        assert position.observation.entry_market_cap == 40_000.0
        assert report.positions_opened == 1
        assert report.open_positions == 1
        assert report.available_capital == pytest.approx(2.5)

    @pytest.mark.asyncio
    async def test_unenriched_token_is_rejected(self):
        """Test a token without holder data is stored but not bought."""
        source = MockDataSource(batches=[[listing("a")]])
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        report = await simulator.run(duration_seconds=60, target_count=1)

        assert ledger.kinds() == [("upsert", "a")]
        assert report.positions_opened == 0
        assert report.observations == 1
        assert report.available_capital == 3.0

    @pytest.mark.asyncio
    async def test_max_positions_respected(self):
        """Test buys stop at the concurrent position limit."""
        tokens = ["a", "b", "c"]
        source = MockDataSource(
            batches=[[listing(t) for t in tokens]],
            enrichments={t: strong_enrichment() for t in tokens},
        )
        ledger = MockLedger()
        params = StrategyParameters(max_positions=2)
        simulator = make_simulator(source, ledger, params=params)

        report = await simulator.run(duration_seconds=60, target_count=3)

        opened = [event[1] for event in ledger.events if event[0] == "open"]
        assert opened == ["a", "b"]
        assert report.open_positions == 2
        assert report.observations == 3

    @pytest.mark.asyncio
    async def test_capital_never_negative(self):
        """Test buys stop once capital is at the minimum trade size."""
        tokens = ["a", "b", "c"]
        source = MockDataSource(
            batches=[[listing(t) for t in tokens]],
            enrichments={t: strong_enrichment() for t in tokens},
        )
        params = StrategyParameters(starting_sol_balance=1.0)
        simulator = make_simulator(source, params=params)

        report = await simulator.run(duration_seconds=60, target_count=3)

        assert report.positions_opened == 2
        assert report.available_capital == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_repeat_listing_opens_once(self):
        """Test a token already held is not bought again."""
        source = MockDataSource(
            batches=[[listing("a")], [listing("a")]],
            enrichments={"a": strong_enrichment()},
        )
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        await simulator.run(duration_seconds=60, target_count=2)

        assert ledger.kinds() == [("upsert", "a"), ("open", "a"), ("upsert", "a")]

    @pytest.mark.asyncio
    async def test_zero_price_is_skipped(self):
        """Test a token with no usable price is not bought."""
        source = MockDataSource(
            batches=[[listing("a", price="0")]],
            enrichments={"a": strong_enrichment()},
        )
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        report = await simulator.run(duration_seconds=60, target_count=1)

        assert ledger.kinds() == [("upsert", "a")]
        assert report.positions_opened == 0


class TestExits:
    """Test exit handling for open positions."""

    @pytest.mark.asyncio
    async def test_profit_exit_on_later_observation(self):
        """Test open positions are re-checked after each observation."""
        source = MockDataSource(
            batches=[[listing("a"), listing("b")]],
            enrichments={"a": strong_enrichment(), "b": strong_enrichment()},
            pairs={"a": [None, PairInfo(market_cap_usd=70_000.0)]},
        )
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        report = await simulator.run(duration_seconds=60, target_count=2)

        assert ledger.kinds() == [
            ("upsert", "a"),
            ("open", "a"),
            ("upsert", "b"),
            ("open", "b"),
            ("close", "a"),
        ]
        close = ledger.events[4]
        assert close[2] == "profit_target"
        assert close[4] > 0
        assert "a" not in simulator.portfolio
        assert "b" in simulator.portfolio
        assert source.pair_lookups == ["a", "a", "b"]
        # 0.5 SOL returned at a 1.5x to 2.5x multiplier
        assert 2.75 <= report.available_capital <= 3.25
        assert report.positions_closed == 1

    @pytest.mark.asyncio
    async def test_stop_loss_exit(self):
        """Test a collapsing market cap closes the position at a loss."""
        source = MockDataSource(
            batches=[[listing("a")]],
            enrichments={"a": strong_enrichment()},
            pairs={"a": [PairInfo(market_cap_usd=20_000.0, liquidity_usd=100.0)]},
        )
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        report = await simulator.run(duration_seconds=60, target_count=1)

        close = ledger.events[2]
        assert close[:3] == ("close", "a", "stop_loss")
        assert close[4] < 0
        assert report.realized_pnl_usd < 0
        assert report.open_positions == 0
        assert 2.8 <= report.available_capital <= 2.9

    @pytest.mark.asyncio
    async def test_raydium_pair_without_liquidity_spike_stays_open(self):
        """Test trading on Raydium alone does not close the position."""
        source = MockDataSource(
            batches=[[listing("a")]],
            enrichments={"a": strong_enrichment()},
            pairs={"a": [PairInfo(liquidity_usd=5_000.0, dex_id="raydium")]},
        )
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        report = await simulator.run(duration_seconds=60, target_count=1)

        assert ledger.kinds() == [("upsert", "a"), ("open", "a")]
        assert report.open_positions == 1

    @pytest.mark.asyncio
    async def test_liquidity_spike_triggers_lp_spike(self):
        """Test liquidity above twice the entry level closes the position."""
        source = MockDataSource(
            batches=[[listing("a")]],
            enrichments={"a": strong_enrichment()},
            pairs={"a": [PairInfo(liquidity_usd=12_000.0, dex_id="raydium")]},
        )
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        await simulator.run(duration_seconds=60, target_count=1)

        assert ledger.events[2][:3] == ("close", "a", "lp_spike")

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_position(self):
        """Test failed pair lookups leave positions open."""
        source = MockDataSource(
            batches=[[listing("a"), listing("b")]],
            enrichments={"a": strong_enrichment()},
            fail_pairs=True,
        )
        simulator = make_simulator(source)

        report = await simulator.run(duration_seconds=60, target_count=2)

        assert report.open_positions == 1
        assert report.positions_closed == 0

    @pytest.mark.asyncio
    async def test_closed_token_can_be_bought_again(self):
        """Test a token is eligible again after its position closes."""
        source = MockDataSource(
            batches=[[listing("a")], [listing("a")]],
            enrichments={"a": strong_enrichment()},
            pairs={"a": [PairInfo(market_cap_usd=10_000.0)]},
        )
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        await simulator.run(duration_seconds=60, target_count=2)

        assert [kind for kind, _ in ledger.kinds()] == [
            "upsert",
            "open",
            "close",
            "upsert",
            "open",
        ]


class TestIngestion:
    """Test ingestion stop conditions and failure handling."""

    @pytest.mark.asyncio
    async def test_target_count_stops_mid_batch(self):
        """Test ingestion stops between listings once the target is met."""
        source = MockDataSource(batches=[[listing(str(i)) for i in range(5)]])
        clock = FakeClock()
        simulator = make_simulator(source, clock=clock)

        report = await simulator.run(duration_seconds=60, target_count=3)

        assert report.observations == 3
        assert source.enriched == ["0", "1", "2"]
        assert source.poll_count == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_deadline_bounds_polling(self):
        """Test polling stops at the deadline with a delay between polls."""
        source = MockDataSource()
        clock = FakeClock()
        simulator = make_simulator(source, clock=clock)

        report = await simulator.run(duration_seconds=12)

        assert source.poll_count == 3
        assert clock.sleeps == [5.0, 5.0, 5.0]
        assert report.observations == 0

    @pytest.mark.asyncio
    async def test_zero_duration_skips_ingestion(self):
        """Test a zero duration goes straight to finalizing."""
        source = MockDataSource(batches=[[listing("a")]])
        ledger = MockLedger()
        simulator = make_simulator(source, ledger)

        report = await simulator.run(duration_seconds=0)

        assert source.poll_count == 0
        assert ledger.events == [("run", NOW)]
        assert report.observations == 0

    @pytest.mark.asyncio
    async def test_listing_failure_is_not_fatal(self):
        """Test a failed poll is retried on the next cycle."""
        source = MockDataSource(batches=[[listing("a")]], fail_listings=1)
        simulator = make_simulator(source)

        report = await simulator.run(duration_seconds=60, target_count=1)

        assert source.poll_count == 2
        assert report.observations == 1

    @pytest.mark.asyncio
    async def test_enrichment_failure_uses_defaults(self):
        """Test a failed enrichment leaves default fields."""
        source = MockDataSource(batches=[[listing("a")]], fail_enrich=True)
        simulator = make_simulator(source)

        observations = await simulator.ingest(duration_seconds=60, target_count=1)

        (obs,) = observations
        assert obs.holder_count == 0
        assert obs.liquidity_usd == 0.0
        assert obs.market_cap_usd == 40_000.0
        assert obs.momentum is False

    @pytest.mark.asyncio
    async def test_observations_keep_arrival_order(self):
        """Test observations are collected in arrival order across polls."""
        source = MockDataSource(
            batches=[[listing("b"), listing("a")], [], [listing("c")]]
        )
        simulator = make_simulator(source)

        observations = await simulator.ingest(duration_seconds=60, target_count=3)

        assert [obs.id for obs in observations] == ["b", "a", "c"]
        assert all(obs.category == "pumpfun" for obs in observations)


class TestLifecycle:
    """Test run phases and fatal ledger failures."""

    @pytest.mark.asyncio
    async def test_phases(self):
        """Test the simulator ends in the finished phase."""
        simulator = make_simulator(MockDataSource())
        assert simulator.phase == SimulationPhase.IDLE

        await simulator.run(duration_seconds=0)

        assert simulator.phase == SimulationPhase.FINISHED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fail_on", ["upsert", "open"])
    async def test_ledger_failure_aborts_run(self, fail_on):
        """Test ledger write failures propagate and skip the run marker."""
        source = MockDataSource(
            batches=[[listing("a")]], enrichments={"a": strong_enrichment()}
        )
        ledger = MockLedger(fail_on=fail_on)
        simulator = make_simulator(source, ledger)

        with pytest.raises(LedgerError):
            await simulator.run(duration_seconds=60, target_count=1)

        assert all(event[0] != "run" for event in ledger.events)
        assert simulator.phase == SimulationPhase.DECIDING
        assert len(simulator.portfolio) == 0
        assert simulator.portfolio.available_capital == 3.0

    @pytest.mark.asyncio
    async def test_close_failure_aborts_run(self):
        """Test a failed close write propagates."""
        source = MockDataSource(
            batches=[[listing("a")]],
            enrichments={"a": strong_enrichment()},
            pairs={"a": [PairInfo(market_cap_usd=1.0)]},
        )
        simulator = make_simulator(source, MockLedger(fail_on="close"))

        with pytest.raises(LedgerError):
            await simulator.run(duration_seconds=60, target_count=1)

    @pytest.mark.asyncio
    async def test_earlier_closes_settled_when_later_close_fails(self):
        """Test capital reflects every close written before a failure."""
        source = MockDataSource(
            batches=[[listing("a"), listing("b"), listing("c")]],
            enrichments={"a": strong_enrichment(), "b": strong_enrichment()},
            pairs={
                "a": [None, None, PairInfo(market_cap_usd=10_000.0)],
                "b": [None, PairInfo(market_cap_usd=10_000.0)],
            },
        )
        ledger = MockLedger(fail_on="close", fail_token="b")
        simulator = make_simulator(source, ledger)

        with pytest.raises(LedgerError):
            await simulator.run(duration_seconds=60, target_count=3)

        assert [event[1] for event in ledger.events if event[0] == "close"] == ["a"]
        assert simulator.portfolio.closed_count == 1
        assert simulator.portfolio.realized_pnl_usd < 0
        # 1.0 SOL spent, 0.5 SOL returned at a 0.6x to 0.8x multiplier
        assert 2.3 <= simulator.portfolio.available_capital <= 2.4

    @pytest.mark.asyncio
    async def test_restart_keeps_ledger_open_trades(self):
        """Test a second run on the same ledger does not rebuy open trades."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            ledger = SQLiteLedger(db_path=str(Path(tmp_dir) / "ledger.sqlite"))
            await ledger.initialize()

            reports = []
            for _ in range(2):
                source = MockDataSource(
                    batches=[[listing("a")]], enrichments={"a": strong_enrichment()}
                )
                simulator = make_simulator(source, ledger)
                reports.append(
                    await simulator.run(duration_seconds=60, target_count=1)
                )

            assert reports[0].positions_opened == 1
            assert reports[1].positions_opened == 0
            assert reports[1].available_capital == 3.0
            assert len(await ledger.load_open_trades()) == 1
            assert await ledger.count_runs() == 2

            await ledger.close()

    @pytest.mark.asyncio
    async def test_default_executor(self):
        """Test the simulator builds its own executor from a seed."""
        simulator = PortfolioSimulator(
            params=StrategyParameters(),
            data_source=MockDataSource(),
            ledger=MockLedger(),
            rng=random.Random(5),
        )

        assert isinstance(simulator.executor, PaperExecutor)
        assert simulator.portfolio.available_capital == 3.0
