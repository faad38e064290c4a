"""Ledger storage using SQLite."""

from datetime import UTC, datetime
from typing import Any

import aiosqlite
import structlog

from ..core.errors import LedgerError
from ..core.interfaces import Ledger
from ..core.types import TokenObservation, TradeRecord

logger = structlog.get_logger(__name__)

SQLITE_URL_PREFIX = "sqlite+aiosqlite:///"


def db_path_from_url(database_url: str) -> str:
    """Strip the SQLAlchemy-style prefix from a SQLite URL."""
    return database_url.replace(SQLITE_URL_PREFIX, "")


def _ts(value: datetime) -> float:
    return value.timestamp()


def _dt(value: float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


class SQLiteLedger(Ledger):
    """SQLite-backed ledger of observations, trades and run markers.

    Every write failure is raised as ``LedgerError``; callers treat it as
    fatal.
    """

    def __init__(self, db_path: str = "memebot.sqlite") -> None:
        """Initialize SQLite ledger.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        logger.info("SQLite ledger initialized", db_path=db_path)

    async def initialize(self) -> None:
        """Initialize database tables."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS token_events (
                        id TEXT PRIMARY KEY,
                        generated_at REAL NOT NULL,
                        token_type TEXT,
                        market_cap_usd REAL,
                        dev_hold_pct REAL,
                        liquidity_usd REAL,
                        holders INTEGER,
                        upgradeable INTEGER,
                        freeze_authority INTEGER,
                        momentum INTEGER,
                        graduation INTEGER,
                        base_price REAL,
                        dev_wallet_address TEXT,
                        score REAL
                    )
                """)

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS trades (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        token_id TEXT NOT NULL,
                        action TEXT NOT NULL,
                        entry_price REAL NOT NULL,
                        exit_price REAL,
                        qty REAL NOT NULL,
                        usd_in REAL NOT NULL,
                        pnl REAL,
                        opened_at REAL NOT NULL,
                        closed_at REAL,
                        score REAL,
                        exit_reason TEXT
                    )
                """)

                await db.execute("""
                    CREATE INDEX IF NOT EXISTS idx_trades_token_id
                    ON trades(token_id)
                """)

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS run_metadata (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        finished_at REAL NOT NULL
                    )
                """)

                await db.commit()
        except aiosqlite.Error as e:
            raise LedgerError(f"Failed to initialize ledger: {e}") from e

        logger.info("Ledger tables initialized")

    async def upsert_observation(
        self, observation: TokenObservation, score: float
    ) -> None:
        """Store an observation and its score; no-op if the id exists.

        Args:
            observation: Token observation
            score: Score computed for the observation
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    """
                    INSERT INTO token_events (
                        id, generated_at, token_type, market_cap_usd,
                        dev_hold_pct, liquidity_usd, holders, upgradeable,
                        freeze_authority, momentum, graduation, base_price,
                        dev_wallet_address, score
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO NOTHING
                """,
                    (
                        observation.id,
                        datetime.now(UTC).timestamp(),
                        observation.category,
                        observation.market_cap_usd,
                        observation.dev_hold_pct,
                        observation.liquidity_usd,
                        observation.holder_count,
                        observation.upgradeable,
                        observation.freeze_authority,
                        observation.momentum,
                        observation.graduation,
                        observation.base_price,
                        observation.dev_wallet_address,
                        score,
                    ),
                )
                inserted = cursor.rowcount
                await db.commit()
        except aiosqlite.Error as e:
            raise LedgerError(
                f"Failed to store observation {observation.id}: {e}"
            ) from e

        logger.debug(
            "Observation upserted",
            token_id=observation.id,
            score=score,
            inserted=inserted == 1,
        )

    async def has_open_trade(self, token_id: str) -> bool:
        """Whether the token has a BUY record that was never closed.

        Raises:
            LedgerError: If the ledger cannot be read
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                return await self._count_open(db, token_id) > 0
        except aiosqlite.Error as e:
            raise LedgerError(f"Failed to check open trades for {token_id}: {e}") from e

    async def _count_open(self, db: aiosqlite.Connection, token_id: str) -> int:
        async with db.execute(
            """
            SELECT COUNT(*) FROM trades
            WHERE token_id = ? AND action = 'BUY' AND exit_price IS NULL
        """,
            (token_id,),
        ) as cursor:
            (open_count,) = await cursor.fetchone()
        return open_count

    async def append_trade_open(self, record: TradeRecord) -> int:
        """Append a BUY record.

        Args:
            record: Open trade record

        Returns:
            Trade ID

        Raises:
            LedgerError: If the token already has an open BUY record
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                if await self._count_open(db, record.token_id):
                    raise LedgerError(
                        f"Token {record.token_id} already has an open BUY record"
                    )

                cursor = await db.execute(
                    """
                    INSERT INTO trades (
                        token_id, action, entry_price, qty, usd_in, opened_at, score
                    )
                    VALUES (?, 'BUY', ?, ?, ?, ?, ?)
                """,
                    (
                        record.token_id,
                        record.entry_price,
                        record.quantity,
                        record.usd_invested,
                        _ts(record.opened_at),
                        record.score,
                    ),
                )
                trade_id = cursor.lastrowid
                await db.commit()
        except aiosqlite.Error as e:
            raise LedgerError(
                f"Failed to record BUY for {record.token_id}: {e}"
            ) from e

        logger.debug(
            "Trade opened",
            trade_id=trade_id,
            token_id=record.token_id,
            entry_price=record.entry_price,
            qty=record.quantity,
            usd_in=record.usd_invested,
        )
        return trade_id

    async def update_trade_close(
        self,
        token_id: str,
        exit_price: float,
        pnl: float,
        closed_at: datetime,
        reason: str | None = None,
    ) -> None:
        """Turn the single open BUY record for a token into a SELL.

        Raises:
            LedgerError: If no open record, or more than one, matches
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    """
                    UPDATE trades
                    SET action = 'SELL', exit_price = ?, pnl = ?, closed_at = ?,
                        exit_reason = ?
                    WHERE token_id = ? AND action = 'BUY' AND exit_price IS NULL
                """,
                    (exit_price, pnl, _ts(closed_at), reason, token_id),
                )
                updated = cursor.rowcount

                if updated != 1:
                    await db.rollback()
                    raise LedgerError(
                        f"Expected one open BUY record for {token_id}, found {updated}"
                    )

                await db.commit()
        except aiosqlite.Error as e:
            raise LedgerError(f"Failed to close trade for {token_id}: {e}") from e

        logger.debug(
            "Trade closed",
            token_id=token_id,
            exit_price=exit_price,
            pnl=pnl,
            reason=reason,
        )

    async def append_run_completion(self, timestamp: datetime) -> None:
        """Record a run-completion marker."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "INSERT INTO run_metadata (finished_at) VALUES (?)",
                    (_ts(timestamp),),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise LedgerError(f"Failed to record run completion: {e}") from e

        logger.debug("Run completion recorded", finished_at=timestamp.isoformat())

    async def load_trades(self, limit: int = 100) -> list[TradeRecord]:
        """Load trades, oldest first."""
        return await self._query_trades(
            "SELECT * FROM trades ORDER BY id ASC LIMIT ?", (limit,)
        )

    async def load_open_trades(self) -> list[TradeRecord]:
        """Load BUY records that have not been closed."""
        return await self._query_trades(
            """
            SELECT * FROM trades
            WHERE action = 'BUY' AND exit_price IS NULL
            ORDER BY id ASC
        """,
            (),
        )

    async def load_observation(self, token_id: str) -> dict[str, Any] | None:
        """Load a stored observation row by id."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM token_events WHERE id = ?", (token_id,)
            ) as cursor:
                row = await cursor.fetchone()

        return dict(row) if row else None

    async def count_observations(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM token_events") as cursor:
                (count,) = await cursor.fetchone()
        return count

    async def count_runs(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM run_metadata") as cursor:
                (count,) = await cursor.fetchone()
        return count

    async def _query_trades(
        self, sql: str, params: tuple[Any, ...]
    ) -> list[TradeRecord]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()

        trades = [
            TradeRecord(
                id=row["id"],
                token_id=row["token_id"],
                action=row["action"],
                entry_price=row["entry_price"],
                quantity=row["qty"],
                usd_invested=row["usd_in"],
                opened_at=_dt(row["opened_at"]),
                score=row["score"],
                exit_price=row["exit_price"],
                realized_pnl=row["pnl"],
                closed_at=_dt(row["closed_at"]),
                exit_reason=row["exit_reason"],
            )
            for row in rows
        ]

        logger.debug("Loaded trades", count=len(trades))
        return trades

    async def close(self) -> None:
        """Close storage (cleanup if needed)."""
        logger.info("Ledger closed")

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
