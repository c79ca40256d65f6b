"""Persistence layer: SQLite schema, checkpoints, registration and queries."""

from .checkpoints import Checkpoint, CheckpointStore
from .contracts import register_contract, tracked_contract_ids
from .database import IndexerDB, transaction
from .queries import IndexQuery, MemberStatus, member_status

__all__ = [
    "IndexerDB",
    "transaction",
    "Checkpoint",
    "CheckpointStore",
    "register_contract",
    "tracked_contract_ids",
    "IndexQuery",
    "MemberStatus",
    "member_status",
]
