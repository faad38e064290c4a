"""Simulation pipeline assembly and command line entry point."""

import argparse
import asyncio
import random
import sys
from typing import Any

import structlog

from ..config.logging import configure_logging
from ..config.settings import AppSettings, load_settings
from ..core.errors import MemebotError
from ..core.types import SimulationReport
from ..data.dexscreener import DexScreenerLookup
from ..data.moralis import MoralisClient
from ..data.scanner import Scanner
from ..exec.paper import PaperExecutor
from ..persist.storage import SQLiteLedger, db_path_from_url
from .simulator import PortfolioSimulator

logger = structlog.get_logger(__name__)


class SimulationPipeline:
    """Assembles the simulator and its collaborators from settings."""

    def __init__(self, settings: AppSettings) -> None:
        """Initialize pipeline.

        Strategy parameters are resolved here, before anything runs, so an
        unknown preset or invalid configuration fails fast.
        """
        self.settings = settings
        self.params = settings.strategy()
        self.components = self._assemble(settings)

        logger.info(
            "Simulation pipeline initialized",
            preset=self.params.name,
            database_url=settings.database_url,
            seeded=settings.rng_seed is not None,
        )

    def _assemble(self, settings: AppSettings) -> dict[str, Any]:
        """Assemble all simulation components from settings."""
        components = {}

        if not settings.moralis_api_key:
            logger.warning("Moralis API key not provided, listing feed may be empty")

        components["data_source"] = Scanner(
            moralis=MoralisClient(
                api_key=settings.moralis_api_key,
                base_url=settings.moralis_base,
                listing_limit=settings.listing_limit,
                timeout_seconds=settings.http_timeout_seconds,
            ),
            dexscreener=DexScreenerLookup(
                base_url=settings.dexscreener_base,
                timeout_seconds=settings.http_timeout_seconds,
            ),
        )

        components["ledger"] = SQLiteLedger(
            db_path=db_path_from_url(settings.database_url)
        )

        components["executor"] = PaperExecutor(
            self.params, rng=random.Random(settings.rng_seed)
        )

        components["simulator"] = PortfolioSimulator(
            params=self.params,
            data_source=components["data_source"],
            ledger=components["ledger"],
            executor=components["executor"],
            poll_interval_seconds=settings.poll_interval_seconds,
        )

        return components

    async def run(self) -> SimulationReport:
        """Run one simulation and release resources."""
        ledger: SQLiteLedger = self.components["ledger"]
        try:
            async with ledger:
                return await self.components["simulator"].run(
                    duration_seconds=self.settings.run_minutes * 60,
                    target_count=self.settings.target_count,
                )
        finally:
            await self.components["data_source"].aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Solana memecoin paper simulator")
    parser.add_argument(
        "--config", default="configs/default.yaml", help="Configuration file path"
    )
    parser.add_argument(
        "--minutes", type=float, default=None, help="Minutes spent collecting listings"
    )
    parser.add_argument("--preset", default=None, help="Strategy preset name")
    parser.add_argument(
        "--target-count",
        type=int,
        default=None,
        help="Stop collecting after this many listings",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    return parser


def apply_overrides(settings: AppSettings, args: argparse.Namespace) -> AppSettings:
    """Overlay command line values on loaded settings."""
    overrides = {
        "run_minutes": args.minutes,
        "strategy_preset": args.preset,
        "target_count": args.target_count,
        "rng_seed": args.seed,
    }
    update = {key: value for key, value in overrides.items() if value is not None}
    if not update:
        return settings
    return AppSettings(**{**settings.model_dump(), **update})


async def main(argv: list[str] | None = None) -> SimulationReport:
    """Main entry point for the simulator."""
    args = build_parser().parse_args(argv)

    try:
        settings = apply_overrides(load_settings(args.config), args)
        configure_logging(settings.log_level, settings.log_json)

        pipeline = SimulationPipeline(settings)
        report = await pipeline.run()
    except (MemebotError, FileNotFoundError, ValueError) as e:
        logger.error("Fatal error", error=str(e))
        sys.exit(1)

    print(
        "Simulation finished. Remaining SOL balance: "
        f"{report.available_capital:.4f} SOL"
    )
    return report


def cli() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nSimulation stopped by user.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
