# pool_monitor/storage/database.py
import logging
import sqlite3

import aiosqlite

from .models import Sample

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """存储读写失败"""


class Database:
    def __init__(self, path: str):
        self.path = path
        self.conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        try:
            self.conn = await aiosqlite.connect(self.path)
            await self._create_tables()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Failed to open {self.path}: {e}") from e

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None

    def _connection(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise StoreUnavailableError("Database not initialized")
        return self.conn

    async def _create_tables(self) -> None:
        conn = self._connection()
        await conn.executescript("""
            CREATE TABLE IF NOT EXISTS historical_data (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                pool_address TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                token0_symbol TEXT,
                token1_symbol TEXT,
                price REAL NOT NULL,
                price_change REAL,
                liquidity REAL NOT NULL,
                liquidity_change REAL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            CREATE INDEX IF NOT EXISTS idx_historical_pool_time
                ON historical_data(pool_address, timestamp);
        """)
        await conn.commit()

    async def record(
        self,
        entity_id: str,
        sample: Sample,
        token0_symbol: str | None = None,
        token1_symbol: str | None = None,
    ) -> int:
        conn = self._connection()
        try:
            # price_change / liquidity_change 在读取时由窗口重新计算
            cursor = await conn.execute(
                """INSERT INTO historical_data
                   (pool_address, timestamp, token0_symbol, token1_symbol,
                    price, price_change, liquidity, liquidity_change)
                   VALUES (?, ?, ?, ?, ?, NULL, ?, NULL)""",
                (
                    entity_id,
                    sample.timestamp,
                    token0_symbol,
                    token1_symbol,
                    sample.price,
                    sample.liquidity,
                ),
            )
            await conn.commit()
        except (sqlite3.Error, ValueError) as e:
            raise StoreUnavailableError(f"Failed to record sample for {entity_id}: {e}") from e
        return cursor.lastrowid or 0

    async def window(self, entity_id: str, from_ts: int, to_ts: int) -> list[Sample]:
        conn = self._connection()
        try:
            cursor = await conn.execute(
                """SELECT pool_address, timestamp, price, liquidity
                   FROM historical_data
                   WHERE pool_address = ? AND timestamp BETWEEN ? AND ?""",
                (entity_id, from_ts, to_ts),
            )
            rows = await cursor.fetchall()
        except (sqlite3.Error, ValueError) as e:
            raise StoreUnavailableError(f"Failed to read window for {entity_id}: {e}") from e
        return [Sample(*row) for row in rows]

    async def prune(self, entity_id: str, older_than_ts: int) -> int:
        conn = self._connection()
        try:
            cursor = await conn.execute(
                "DELETE FROM historical_data WHERE pool_address = ? AND timestamp < ?",
                (entity_id, older_than_ts),
            )
            await conn.commit()
        except (sqlite3.Error, ValueError) as e:
            raise StoreUnavailableError(f"Failed to prune {entity_id}: {e}") from e
        deleted = cursor.rowcount if cursor.rowcount > 0 else 0
        if deleted:
            logger.debug(f"Pruned {deleted} samples for {entity_id}")
        return deleted
