"""
Storage backends for the geocoding cache and the administrative directory.

DuckDB backs both persistent stores; an in-memory cache is provided for
short runs. Every backend serialises access with a lock so one instance
can be shared by the worker threads of a batch run.
"""

import json
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import duckdb
import pandas as pd

from .base import AdministrativeDirectory, CacheGateway

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def _connect(db_path: Path | str) -> duckdb.DuckDBPyConnection:
    if str(db_path) != MEMORY:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(db_path))


class InMemoryCache(CacheGateway):
    """Process-local cache; entries live as long as the instance."""

    def __init__(self):
        self._entries: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def __len__(self) -> int:
        return len(self._entries)


class DuckDBCache(CacheGateway):
    """
    Persistent response cache in a DuckDB table.

    Values are stored as JSON text. With a ``ttl`` set, entries older than
    the ttl are treated as misses and refreshed on the next set.
    """

    DDL = """
    CREATE TABLE IF NOT EXISTS geocode_cache (
        cache_key TEXT PRIMARY KEY,
        response_json TEXT NOT NULL,
        created_at TIMESTAMP NOT NULL
    );
    """

    def __init__(self, db_path: Path | str, ttl: Optional[timedelta] = None):
        """
        Initialize DuckDB cache.

        Args:
            db_path: Path to DuckDB database file, or ":memory:"
            ttl: Maximum age of an entry (None keeps entries forever)
        """
        self.db_path = db_path
        self.ttl = ttl
        self._lock = threading.Lock()
        self.con = _connect(db_path)
        self.con.execute(self.DDL)
        logger.info(f"Initialized DuckDB cache: {db_path}")

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            row = self.con.execute(
                "SELECT response_json, created_at FROM geocode_cache WHERE cache_key = ?",
                [key],
            ).fetchone()
        if row is None:
            return None

        response_json, created_at = row
        if self.ttl is not None and created_at < datetime.now() - self.ttl:
            return None
        return json.loads(response_json)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self.con.execute(
                """
                INSERT INTO geocode_cache (cache_key, response_json, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(cache_key) DO UPDATE SET
                    response_json = excluded.response_json,
                    created_at = excluded.created_at
                """,
                [key, json.dumps(value), datetime.now()],
            )

    def clear(self) -> None:
        with self._lock:
            self.con.execute("DELETE FROM geocode_cache")

    def __len__(self) -> int:
        with self._lock:
            row = self.con.execute("SELECT COUNT(*) FROM geocode_cache").fetchone()
        return row[0] if row else 0

    def close(self) -> None:
        """Close database connection."""
        if self.con:
            self.con.close()
            logger.info("Closed DuckDB cache connection")


class DuckDBAdministrativeDirectory(AdministrativeDirectory):
    """
    Countries, states/provinces and counties in DuckDB.

    Countries and states are seeded from pandas frames; counties are
    usually created on demand by the resolver, since most installations
    start with an empty county table.
    """

    DDL_COUNTRY = """
    CREATE TABLE IF NOT EXISTS country (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        iso_code TEXT
    );
    """

    DDL_STATE_PROVINCE = """
    CREATE TABLE IF NOT EXISTS state_province (
        id INTEGER PRIMARY KEY,
        country_id INTEGER,
        name TEXT NOT NULL,
        abbreviation TEXT
    );
    """

    DDL_COUNTY_SEQUENCE = "CREATE SEQUENCE IF NOT EXISTS county_id_seq START 1;"

    DDL_COUNTY = """
    CREATE TABLE IF NOT EXISTS county (
        id INTEGER PRIMARY KEY DEFAULT nextval('county_id_seq'),
        state_province_id INTEGER,
        name TEXT NOT NULL
    );
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize DuckDB directory.

        Args:
            db_path: Path to DuckDB database file, or ":memory:"
        """
        self.db_path = db_path
        self._lock = threading.Lock()
        self.con = _connect(db_path)
        self.con.execute(self.DDL_COUNTRY)
        self.con.execute(self.DDL_STATE_PROVINCE)
        self.con.execute(self.DDL_COUNTY_SEQUENCE)
        self.con.execute(self.DDL_COUNTY)
        logger.info(f"Initialized DuckDB directory: {db_path}")

    def _first(self, sql: str, params: list[Any]) -> Optional[Any]:
        with self._lock:
            row = self.con.execute(sql, params).fetchone()
        return row[0] if row else None

    def find_country_by_iso_code(self, iso_code: str) -> Optional[int]:
        return self._first(
            "SELECT id FROM country WHERE iso_code = ? ORDER BY id LIMIT 1", [iso_code]
        )

    def find_state_by_name(self, name: str) -> Optional[int]:
        return self._first(
            "SELECT id FROM state_province WHERE name = ? ORDER BY id LIMIT 1", [name]
        )

    def find_county_by_name(self, name: str) -> Optional[int]:
        return self._first(
            "SELECT id FROM county WHERE name = ? ORDER BY id LIMIT 1", [name]
        )

    def find_state_name_by_id(self, state_province_id: int) -> Optional[str]:
        return self._first(
            "SELECT name FROM state_province WHERE id = ?", [state_province_id]
        )

    def find_state_name_by_abbreviation(self, abbreviation: str) -> Optional[str]:
        return self._first(
            "SELECT name FROM state_province WHERE abbreviation = ? ORDER BY id LIMIT 1",
            [abbreviation],
        )

    def create_county(self, state_province_id: int, name: str) -> int:
        """
        Create a county under a state, returning its id.

        If another thread already created the same county for that state,
        the existing id is returned instead of a duplicate.
        """
        with self._lock:
            existing = self.con.execute(
                "SELECT id FROM county WHERE state_province_id = ? AND name = ? LIMIT 1",
                [state_province_id, name],
            ).fetchone()
            if existing:
                return existing[0]

            row = self.con.execute(
                """
                INSERT INTO county (state_province_id, name)
                VALUES (?, ?)
                RETURNING id
                """,
                [state_province_id, name],
            ).fetchone()
        return row[0]

    def load_countries(self, frame: pd.DataFrame) -> int:
        """
        Bulk-insert countries.

        Args:
            frame: Columns ``id``, ``name``, ``iso_code``

        Returns:
            Number of rows inserted
        """
        return self._load("country", frame[["id", "name", "iso_code"]])

    def load_state_provinces(self, frame: pd.DataFrame) -> int:
        """
        Bulk-insert states/provinces.

        Args:
            frame: Columns ``id``, ``country_id``, ``name``, ``abbreviation``

        Returns:
            Number of rows inserted
        """
        return self._load(
            "state_province", frame[["id", "country_id", "name", "abbreviation"]]
        )

    def _load(self, table: str, frame: pd.DataFrame) -> int:
        if frame.empty:
            return 0
        with self._lock:
            self.con.register("incoming_rows", frame)
            try:
                self.con.execute(f"INSERT INTO {table} SELECT * FROM incoming_rows")
            finally:
                self.con.unregister("incoming_rows")
        logger.info(f"Loaded {len(frame)} rows into {table}")
        return len(frame)

    def get_summary(self) -> Dict[str, int]:
        """Row counts per table."""
        summary = {}
        for table in ("country", "state_province", "county"):
            summary[table] = self._first(f"SELECT COUNT(*) FROM {table}", [])
        return summary

    def close(self) -> None:
        """Close database connection."""
        if self.con:
            self.con.close()
            logger.info("Closed DuckDB directory connection")
