"""Shared test fixtures for Keystone Indexer."""

import tempfile
from pathlib import Path

import pytest

from keystone_indexer.events.models import EventKind, RawEvent, RoleEvent
from keystone_indexer.persistence import IndexerDB

CONTRACT = "CDLZFC3SYJYDZT7K67VZ75HPJVIEUVNIXF47ZG2FB2RMQQVU2HHGCYSC"
ALICE = "GAAZI4TCR3TY5OJHCTJC2A4QSY6CJWJH5IAJTGKIN2ER7LBNVKOCCWN7"
BOB = "GBRPYHIL2CI3FNQ4BXLFMNDLFJUNPU2HY3ZMFSHONUCEOASW7QC7OX2H"


@pytest.fixture
def contract_id():
    return CONTRACT


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB


@pytest.fixture
def db_path():
    """Path to a fresh database file inside a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield str(Path(tmpdir) / "indexer.db")


@pytest.fixture
def db(db_path):
    """An open, migrated ``IndexerDB``."""
    with IndexerDB(db_path) as database:
        yield database


@pytest.fixture
def conn(db):
    return db.conn


@pytest.fixture
def make_event():
    """Factory for ``RoleEvent``s with sensible defaults."""

    def _make(kind: EventKind, role: str = "OPERATOR", **kwargs) -> RoleEvent:
        defaults = {
            "contract_id": CONTRACT,
            "tx_hash": "tx",
            "ledger": 100,
            "timestamp": 1_700_000_000,
        }
        defaults.update(kwargs)
        return RoleEvent(kind=kind, role=role, **defaults)

    return _make


@pytest.fixture
def make_raw():
    """Factory for ``RawEvent``s in Soroban JSON ScVal form."""

    def _make(
        tag: str, *topics, value=None, ledger: int = 100, tx_hash: str = "tx", index: int = 1
    ):
        return RawEvent(
            topics=[{"symbol": tag}, *topics],
            value=value,
            tx_hash=tx_hash,
            ledger=ledger,
            ledger_closed_at=1_700_000_000 + ledger,
            event_id=f"{ledger:019d}-{index:010d}",
        )

    return _make
