"""Async SQLite store for player scores and round stats."""

import logging
from pathlib import Path
from typing import Optional

import aiosqlite

from models import PlayerScore

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class Database:
    """Async SQLite database wrapper."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database is not connected")
        return self._connection

    async def connect(self) -> None:
        """Open the connection and bring the schema up to date."""
        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row
        await self._run_migrations()

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _applied_migrations(self) -> set[str]:
        await self.connection.execute(
            "CREATE TABLE IF NOT EXISTS _migrations ("
            " name TEXT PRIMARY KEY,"
            " applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
        )
        await self.connection.commit()
        cursor = await self.connection.execute("SELECT name FROM _migrations")
        return {row["name"] for row in await cursor.fetchall()}

    async def _run_migrations(self) -> None:
        """Apply each migrations/*.sql file once, in filename order."""
        applied = await self._applied_migrations()
        pending = [path for path in sorted(MIGRATIONS_DIR.glob("*.sql")) if path.name not in applied]

        for path in pending:
            logger.info(f"Running migration: {path.name}")
            await self.connection.executescript(path.read_text())
            await self.connection.execute("INSERT INTO _migrations (name) VALUES (?)", (path.name,))
            await self.connection.commit()

        if not pending:
            logger.debug(f"Schema up to date ({len(applied)} migration(s))")

    async def execute(self, query: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Execute a statement and commit."""
        cursor = await self.connection.execute(query, params)
        await self.connection.commit()
        return cursor

    async def fetch_one(self, query: str, params: tuple = ()) -> Optional[aiosqlite.Row]:
        cursor = await self.connection.execute(query, params)
        return await cursor.fetchone()

    # Score ledger methods

    async def get_player_score(self, ledger_key: str) -> Optional[PlayerScore]:
        """Get a player's stored score and stats."""
        row = await self.fetch_one(
            """
            SELECT ledger_key, score, rounds_played, rounds_won
            FROM player_scores
            WHERE ledger_key = ?
            """,
            (ledger_key,),
        )
        return PlayerScore(**dict(row)) if row else None

    async def set_player_score(self, ledger_key: str, score: int) -> None:
        """Store a player's current score."""
        if score < 0:
            raise ValueError("score must be non-negative")
        await self.execute(
            """
            INSERT INTO player_scores (ledger_key, score)
            VALUES (?, ?)
            ON CONFLICT(ledger_key) DO UPDATE SET
                score = excluded.score,
                updated_at = CURRENT_TIMESTAMP
            """,
            (ledger_key, score),
        )

    async def record_round(self, ledger_key: str, won: bool) -> None:
        """Count a finished round for a player."""
        won_increment = 1 if won else 0

        await self.execute(
            """
            INSERT INTO player_scores (ledger_key, rounds_played, rounds_won)
            VALUES (?, 1, ?)
            ON CONFLICT(ledger_key) DO UPDATE SET
                rounds_played = rounds_played + 1,
                rounds_won = rounds_won + ?,
                updated_at = CURRENT_TIMESTAMP
            """,
            (ledger_key, won_increment, won_increment),
        )
