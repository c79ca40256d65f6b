"""Tests for the persistence database module."""

import sqlite3
import tempfile
from pathlib import Path

import pytest

from keystone_indexer.exceptions import StorageUnavailableError
from keystone_indexer.persistence import (
    Checkpoint,
    CheckpointStore,
    IndexerDB,
    register_contract,
    tracked_contract_ids,
)
from keystone_indexer.persistence.database import transaction


class TestDatabaseSchema:
    def test_creates_tables(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with IndexerDB(str(Path(tmpdir) / "indexer.db")) as db:
                tables = db.conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
                ).fetchall()
                table_names = {r["name"] for r in tables}

                assert {
                    "contracts",
                    "roles",
                    "role_members",
                    "events",
                    "checkpoints",
                    "schema_version",
                } <= table_names

    def test_creates_indexes(self, conn):
        names = {
            r["name"]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type='index'").fetchall()
        }
        assert "idx_role_members_contract_role" in names
        assert "idx_role_members_expiry" in names
        assert "idx_events_contract" in names

    def test_wal_mode(self, conn):
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

    def test_migration_is_idempotent(self, db_path):
        with IndexerDB(db_path):
            pass
        with IndexerDB(db_path) as db:
            versions = db.conn.execute("SELECT version FROM schema_version").fetchall()
            assert len(versions) == 1

    def test_upgrades_v1_checkpoints(self, db_path):
        legacy = sqlite3.connect(db_path)
        legacy.executescript(
            """
            CREATE TABLE schema_version (version INTEGER NOT NULL);
            INSERT INTO schema_version (version) VALUES (1);
            CREATE TABLE checkpoints (
                contract_id TEXT    PRIMARY KEY,
                position    INTEGER NOT NULL,
                updated_at  INTEGER NOT NULL
            );
            INSERT INTO checkpoints VALUES ('CA', 42, 7);
            """
        )
        legacy.close()

        with IndexerDB(db_path) as db:
            columns = {r["name"] for r in db.conn.execute("PRAGMA table_info(checkpoints)")}
            assert "cursor" in columns
            assert db.conn.execute("SELECT version FROM schema_version").fetchone()[0] == 2
            assert CheckpointStore(db.conn).load("CA") == Checkpoint("CA", 42)

    def test_creates_parent_directories(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "dir" / "indexer.db"
            with IndexerDB(str(path)):
                pass
            assert path.exists()


class TestConnection:
    def test_conn_requires_connect(self, db_path):
        with pytest.raises(RuntimeError):
            IndexerDB(db_path).conn

    def test_unopenable_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            # A directory cannot be opened as a database file
            with pytest.raises(StorageUnavailableError) as exc_info:
                IndexerDB(tmpdir).connect()
            assert str(exc_info.value).startswith("[KI300]")

    def test_read_only_missing_file(self, db_path):
        with pytest.raises(StorageUnavailableError):
            IndexerDB(db_path, read_only=True).connect()
        assert not Path(db_path).exists()

    def test_read_only_rejects_writes(self, db_path):
        with IndexerDB(db_path):
            pass
        with IndexerDB(db_path, read_only=True) as db:
            with pytest.raises(sqlite3.OperationalError):
                db.conn.execute("INSERT INTO contracts (id, first_seen) VALUES ('C', 1)")

    def test_close_is_idempotent(self, db_path):
        db = IndexerDB(db_path)
        db.connect()
        db.close()
        db.close()


class TestTransaction:
    def test_commits(self, conn):
        with transaction(conn):
            conn.execute("INSERT INTO contracts (id, first_seen) VALUES ('C1', 1)")
        assert tracked_contract_ids(conn) == ["C1"]

    def test_rolls_back_on_error(self, conn):
        with pytest.raises(ValueError):
            with transaction(conn):
                conn.execute("INSERT INTO contracts (id, first_seen) VALUES ('C1', 1)")
                raise ValueError("boom")
        assert tracked_contract_ids(conn) == []


class TestContracts:
    def test_register_is_idempotent(self, conn):
        assert register_contract(conn, "CA", now=10) is True
        assert register_contract(conn, "CA", now=20) is False

        row = conn.execute("SELECT first_seen FROM contracts WHERE id = 'CA'").fetchone()
        assert row["first_seen"] == 10

    def test_tracked_in_registration_order(self, conn):
        register_contract(conn, "CB", now=1)
        register_contract(conn, "CA", now=2)
        assert tracked_contract_ids(conn) == ["CB", "CA"]

    def test_empty_id_rejected(self, conn):
        with pytest.raises(ValueError):
            register_contract(conn, "")
