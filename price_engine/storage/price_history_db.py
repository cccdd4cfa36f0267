# price_engine/storage/price_history_db.py

"""SQLite-backed, append-only price history store."""

import json
import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from price_engine.config.settings import Settings
from price_engine.errors import StoreUnavailableError
from price_engine.models.price_entry import (
    Availability,
    Condition,
    PriceEntry,
    parse_timestamp,
)

logger = logging.getLogger("price_engine.price_history")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS price_entries (
    id             TEXT    PRIMARY KEY,
    product_id     TEXT    NOT NULL,
    platform_id    TEXT    NOT NULL,
    price          REAL    NOT NULL CHECK (price > 0),
    original_price REAL,
    currency       TEXT    NOT NULL DEFAULT 'JPY',
    availability   TEXT    NOT NULL,
    item_condition TEXT    NOT NULL DEFAULT 'new',
    seller         TEXT    NOT NULL DEFAULT '',
    shipping_cost  REAL    NOT NULL DEFAULT 0,
    product_url    TEXT    NOT NULL DEFAULT '',
    recorded_at    TEXT    NOT NULL,
    metadata       TEXT    NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_entries_product_platform_date
    ON price_entries(product_id, platform_id, recorded_at);
"""

_COLUMNS = (
    "id, product_id, platform_id, price, original_price, currency, "
    "availability, item_condition, seller, shipping_cost, product_url, "
    "recorded_at, metadata"
)


def _iso(ts: datetime) -> str:
    """Fixed-width UTC text so that string order equals time order."""
    return parse_timestamp(ts).isoformat(timespec="microseconds")


def _row_to_entry(row: tuple[object, ...]) -> PriceEntry:
    return PriceEntry(
        id=str(row[0]),
        product_id=str(row[1]),
        platform_id=str(row[2]),
        price=float(row[3]),  # type: ignore[arg-type]
        original_price=(
            float(row[4]) if row[4] is not None else None  # type: ignore[arg-type]
        ),
        currency=str(row[5]),
        availability=Availability(row[6]),
        condition=Condition(row[7]),
        seller=str(row[8]),
        shipping_cost=float(row[9]),  # type: ignore[arg-type]
        product_url=str(row[10]),
        timestamp=parse_timestamp(str(row[11])),
        metadata=json.loads(str(row[12])),
    )


class PriceHistoryDB:
    """SQLite store for validated price entries. Entries are never deleted."""

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.PRICE_DB_PATH
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(path), check_same_thread=False,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailableError(
                f"cannot open price history at {path}: {exc}"
            ) from exc
        logger.debug("PriceHistoryDB opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # ── Recording ────────────────────────────────────────

    def append(self, entry: PriceEntry) -> None:
        """Persist one entry."""
        self.append_many([entry])

    def append_many(self, entries: Iterable[PriceEntry]) -> int:
        """Persist entries in one transaction; returns how many were new."""
        rows = [
            (
                e.id,
                e.product_id,
                e.platform_id,
                e.price,
                e.original_price,
                e.currency,
                e.availability.value,
                e.condition.value,
                e.seller,
                e.shipping_cost,
                e.product_url,
                _iso(e.timestamp),
                json.dumps(e.metadata, ensure_ascii=False),
            )
            for e in entries
        ]
        try:
            with self._conn:
                cur = self._conn.executemany(
                    f"INSERT OR IGNORE INTO price_entries ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as exc:
            raise StoreUnavailableError(
                f"failed to append price entries: {exc}"
            ) from exc
        inserted = cur.rowcount if cur.rowcount >= 0 else len(rows)
        if inserted:
            logger.debug("Recorded %d price entries", inserted)
        return inserted

    # ── Querying ─────────────────────────────────────────

    def query(
        self,
        product_id: str,
        platform_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[PriceEntry]:
        """Entries for a product, optionally scoped, oldest first."""
        sql = f"SELECT {_COLUMNS} FROM price_entries WHERE product_id = ?"
        params: list[object] = [product_id]
        if platform_id is not None:
            sql += " AND platform_id = ?"
            params.append(platform_id)
        if since is not None:
            sql += " AND recorded_at >= ?"
            params.append(_iso(since))
        if until is not None:
            sql += " AND recorded_at <= ?"
            params.append(_iso(until))
        sql += " ORDER BY recorded_at ASC"
        return [_row_to_entry(r) for r in self._fetch(sql, params)]

    def latest(
        self, product_id: str, platform_id: str | None = None,
    ) -> PriceEntry | None:
        """Most recent entry for a product (on one platform if given)."""
        sql = f"SELECT {_COLUMNS} FROM price_entries WHERE product_id = ?"
        params: list[object] = [product_id]
        if platform_id is not None:
            sql += " AND platform_id = ?"
            params.append(platform_id)
        sql += " ORDER BY recorded_at DESC LIMIT 1"
        rows = self._fetch(sql, params)
        return _row_to_entry(rows[0]) if rows else None

    def recent_prices(
        self,
        product_id: str,
        platform_id: str | None = None,
        limit: int = 10,
    ) -> list[float]:
        """The last *limit* prices, oldest first."""
        sql = "SELECT price FROM price_entries WHERE product_id = ?"
        params: list[object] = [product_id]
        if platform_id is not None:
            sql += " AND platform_id = ?"
            params.append(platform_id)
        sql += " ORDER BY recorded_at DESC LIMIT ?"
        params.append(limit)
        rows = self._fetch(sql, params)
        return [float(r[0]) for r in reversed(rows)]  # type: ignore[arg-type]

    def product_ids(self) -> list[str]:
        """Every product with at least one entry."""
        rows = self._fetch(
            "SELECT DISTINCT product_id FROM price_entries "
            "ORDER BY product_id",
            [],
        )
        return [str(r[0]) for r in rows]

    def _fetch(
        self, sql: str, params: list[object],
    ) -> list[tuple[object, ...]]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(
                f"price history query failed: {exc}"
            ) from exc
