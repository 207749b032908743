"""
Ruleset persistence.

PostgresRulesetStore keeps rulesets in the extraction_configs table
(Supabase/Postgres via psycopg2). Rows are immutable: a changed ruleset is
saved as a new version under the same match_hash, and readers take the
latest version per hash. InMemoryRulesetStore backs tests and DB-less runs.
"""

import logging
import re
import threading
from typing import Dict, List, Optional, Protocol, Tuple

import psycopg2
from psycopg2.extras import Json, RealDictCursor

from .errors import RulesetRecordError, StoreError
from .records import config_from_record, config_to_record
from .rules import ExtractionConfig

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "extraction_configs"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_COLUMNS = "id, name, version, match_patterns, match_hash, extract_rules, created_at, updated_at"


class RulesetRepository(Protocol):
    """Storage interface the extraction service depends on."""

    def find_by_hash(self, match_hash: str) -> Optional[ExtractionConfig]:
        ...

    def list_all(self) -> List[ExtractionConfig]:
        ...

    def save(self, config: ExtractionConfig) -> ExtractionConfig:
        ...


class PostgresRulesetStore:
    """psycopg2-backed ruleset store."""

    def __init__(self, db_url: str, table: Optional[str] = None):
        if not db_url:
            raise StoreError("Database URL is required for PostgresRulesetStore")
        self.db_url = db_url
        self.table = table or DEFAULT_TABLE
        if not _IDENTIFIER.match(self.table):
            raise StoreError(f"Invalid table name: {self.table!r}")

        logger.info(f"[store] PostgresRulesetStore initialized: table={self.table}")

    def _get_db_conn(self):
        """Get database connection."""
        try:
            return psycopg2.connect(self.db_url, connect_timeout=5)
        except psycopg2.Error as e:
            logger.error(f"[store] Failed to connect to database: {e}")
            raise StoreError(f"Database connection failed: {e}") from e

    def ensure_table(self) -> None:
        """Create the rulesets table and its hash index if missing."""
        statements = [
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                name TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                match_patterns JSONB NOT NULL,
                match_hash TEXT NOT NULL,
                extract_rules JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                UNIQUE (match_hash, version)
            )
            """,
            f"CREATE INDEX IF NOT EXISTS idx_{self.table}_match_hash ON {self.table} (match_hash)",
        ]
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(statement)
            conn.commit()
            logger.info(f"[store] Ensured table {self.table} exists")
        except psycopg2.Error as e:
            conn.rollback()
            raise StoreError(f"Could not create table {self.table}: {e}") from e
        finally:
            conn.close()

    def find_by_hash(self, match_hash: str) -> Optional[ExtractionConfig]:
        """Latest version stored under match_hash, or None."""
        rows = self._fetch(
            f"SELECT {_COLUMNS} FROM {self.table} WHERE match_hash = %s "
            f"ORDER BY version DESC LIMIT 1",
            (match_hash,),
        )
        configs = self._decode_rows(rows)
        return configs[0] if configs else None

    def list_all(self) -> List[ExtractionConfig]:
        """Latest version of every ruleset."""
        rows = self._fetch(
            f"SELECT DISTINCT ON (match_hash) {_COLUMNS} FROM {self.table} "
            f"ORDER BY match_hash, version DESC",
            (),
        )
        configs = self._decode_rows(rows)
        logger.debug(f"[store] Loaded {len(configs)} rulesets from {self.table}")
        return configs

    def save(self, config: ExtractionConfig) -> ExtractionConfig:
        """
        Insert a ruleset row.

        If (match_hash, version) already exists the stored row is returned
        unchanged; rows are never updated in place.
        """
        record = config_to_record(config)
        params = (
            record["name"],
            record["version"],
            Json(record["match_patterns"]),
            record["match_hash"],
            Json(record["extract_rules"]),
        )

        conn = self._get_db_conn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    INSERT INTO {self.table} (name, version, match_patterns, match_hash, extract_rules)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (match_hash, version) DO NOTHING
                    RETURNING {_COLUMNS}
                    """,
                    params,
                )
                row = cur.fetchone()
                if row is None:
                    cur.execute(
                        f"SELECT {_COLUMNS} FROM {self.table} WHERE match_hash = %s AND version = %s",
                        (record["match_hash"], record["version"]),
                    )
                    row = cur.fetchone()
                    logger.info(f"[store] Ruleset {config.match_hash[:12]} v{config.version} "
                                f"already stored, keeping existing row")
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"[store] Failed to save ruleset '{config.name}': {e}")
            raise StoreError(f"Failed to save ruleset: {e}") from e
        finally:
            conn.close()

        if row is None:
            raise StoreError(f"Ruleset {config.match_hash[:12]} v{config.version} vanished after insert")

        saved = config_from_record(row)
        logger.info(f"[store] Saved ruleset '{saved.name}' v{saved.version} ({saved.match_hash[:12]})")
        return saved

    def save_new_version(self, config: ExtractionConfig) -> ExtractionConfig:
        """Save config as (highest stored version for its hash) + 1."""
        rows = self._fetch(
            f"SELECT COALESCE(MAX(version), 0) AS max_version FROM {self.table} WHERE match_hash = %s",
            (config.match_hash,),
        )
        current = int(rows[0]["max_version"]) if rows else 0
        return self.save(config.with_next_version(after=current))

    def _fetch(self, query: str, params: Tuple) -> List[Dict]:
        conn = self._get_db_conn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                return list(cur.fetchall())
        except psycopg2.Error as e:
            logger.error(f"[store] Query on {self.table} failed: {e}")
            raise StoreError(f"Query failed: {e}") from e
        finally:
            conn.close()

    def _decode_rows(self, rows: List[Dict]) -> List[ExtractionConfig]:
        configs = []
        for row in rows:
            try:
                configs.append(config_from_record(row))
            except RulesetRecordError as e:
                logger.warning(f"[store] Skipping undecodable ruleset row {row.get('id')}: {e}")
        return configs


class InMemoryRulesetStore:
    """Thread-safe dict-backed store keyed by (match_hash, version)."""

    def __init__(self, configs: Optional[List[ExtractionConfig]] = None):
        self._lock = threading.Lock()
        self._rows: Dict[Tuple[str, int], ExtractionConfig] = {}
        for config in configs or []:
            self.save(config)

    def find_by_hash(self, match_hash: str) -> Optional[ExtractionConfig]:
        with self._lock:
            versions = [c for (h, _), c in self._rows.items() if h == match_hash]
        return max(versions, key=lambda c: c.version) if versions else None

    def list_all(self) -> List[ExtractionConfig]:
        with self._lock:
            latest: Dict[str, ExtractionConfig] = {}
            for config in self._rows.values():
                current = latest.get(config.match_hash)
                if current is None or config.version > current.version:
                    latest[config.match_hash] = config
        return list(latest.values())

    def save(self, config: ExtractionConfig) -> ExtractionConfig:
        key = (config.match_hash, config.version)
        with self._lock:
            existing = self._rows.get(key)
            if existing is not None:
                return existing
            self._rows[key] = config
        logger.debug(f"[store] Saved ruleset '{config.name}' v{config.version} in memory")
        return config

    def save_new_version(self, config: ExtractionConfig) -> ExtractionConfig:
        with self._lock:
            current = max(
                (v for (h, v) in self._rows if h == config.match_hash), default=0
            )
            saved = config.with_next_version(after=current)
            self._rows[(saved.match_hash, saved.version)] = saved
        return saved

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)
