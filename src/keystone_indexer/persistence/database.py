"""SQLite-backed indexer database: derived tables, audit log and checkpoints."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..exceptions import StorageUnavailableError
from ..logging_config import get_logger

logger = get_logger(__name__)

# Current schema version (bump when tables change).
_SCHEMA_VERSION = 2


class IndexerDB:
    """Manages the indexer's SQLite database.

    Usage::

        with IndexerDB("./indexer.db") as db:
            projector = StateProjector(db.conn)

    Read-only handles (``read_only=True``) never create the file and never
    migrate; they are what the CLI listings and the HTTP API use.
    """

    def __init__(self, db_path: str, read_only: bool = False) -> None:
        self.db_path: Path = Path(db_path)
        self.read_only = read_only
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        """Return the active connection. Raises if not connected."""
        if self._conn is None:
            raise RuntimeError("IndexerDB is not connected. Use as context manager or call connect().")
        return self._conn

    # ── lifecycle ─────────────────────────────────────────────────

    def connect(self) -> sqlite3.Connection:
        """Open (or create) the database and run migrations.

        Raises:
            StorageUnavailableError: If the file cannot be opened or the
                schema cannot be created.
        """
        try:
            if self.read_only:
                if not self.db_path.exists():
                    raise StorageUnavailableError(self.db_path, "database file does not exist")
                conn = sqlite3.connect(
                    f"file:{self.db_path}?mode=ro", uri=True, isolation_level=None
                )
            else:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path), isolation_level=None)
                conn.execute("PRAGMA journal_mode=WAL")
            conn.row_factory = sqlite3.Row
            self._conn = conn
            if not self.read_only:
                self._migrate()
        except (sqlite3.Error, OSError) as e:
            self.close()
            raise StorageUnavailableError(self.db_path, str(e)) from e
        logger.debug("Indexer DB connected at %s (read_only=%s)", self.db_path, self.read_only)
        return conn

    def close(self) -> None:
        """Close the connection if open."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "IndexerDB":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ── migration ─────────────────────────────────────────────────

    def _migrate(self) -> None:
        """Idempotently create / upgrade all tables."""
        with transaction(self.conn) as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER NOT NULL
                )
                """
            )
            row = c.execute("SELECT version FROM schema_version").fetchone()
            if row is None:
                c.execute("INSERT INTO schema_version (version) VALUES (?)", (_SCHEMA_VERSION,))
            version = _SCHEMA_VERSION if row is None else row["version"]

            # ── contracts ────────────────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS contracts (
                    id          TEXT    PRIMARY KEY,
                    first_seen  INTEGER NOT NULL
                )
                """
            )

            # ── roles ────────────────────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS roles (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    contract_id TEXT    NOT NULL,
                    role        TEXT    NOT NULL,
                    admin_role  TEXT,
                    created_at  INTEGER NOT NULL,
                    UNIQUE (contract_id, role)
                )
                """
            )

            # ── role_members ─────────────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS role_members (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    contract_id  TEXT    NOT NULL,
                    role         TEXT    NOT NULL,
                    account      TEXT    NOT NULL,
                    expiry       INTEGER NOT NULL DEFAULT 0,
                    last_updated INTEGER NOT NULL,
                    UNIQUE (contract_id, role, account)
                )
                """
            )

            # ── events (audit log) ───────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    contract_id TEXT    NOT NULL,
                    event_type  TEXT    NOT NULL,
                    payload     TEXT    NOT NULL,
                    tx_hash     TEXT,
                    ledger      INTEGER,
                    created_at  INTEGER NOT NULL
                )
                """
            )

            # ── checkpoints ──────────────────────────────────────────
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS checkpoints (
                    contract_id TEXT    PRIMARY KEY,
                    position    INTEGER NOT NULL,
                    cursor      TEXT,
                    updated_at  INTEGER NOT NULL
                )
                """
            )

            # ── indexes ──────────────────────────────────────────────
            c.execute(
                "CREATE INDEX IF NOT EXISTS idx_role_members_contract_role "
                "ON role_members(contract_id, role)"
            )
            c.execute(
                "CREATE INDEX IF NOT EXISTS idx_role_members_expiry "
                "ON role_members(expiry) WHERE expiry > 0"
            )
            c.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_contract "
                "ON events(contract_id, created_at)"
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)")

            if version < 2:
                # v2: checkpoints resume mid-ledger from an event paging token
                columns = {r["name"] for r in c.execute("PRAGMA table_info(checkpoints)")}
                if "cursor" not in columns:
                    c.execute("ALTER TABLE checkpoints ADD COLUMN cursor TEXT")
                c.execute("UPDATE schema_version SET version = ?", (_SCHEMA_VERSION,))
                logger.info("Migrated %s to schema v%d", self.db_path, _SCHEMA_VERSION)


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements as one transaction.

    The connection must be in autocommit mode (``isolation_level=None``,
    as ``IndexerDB`` opens it). Commits on success, rolls back and
    re-raises on any exception.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")
