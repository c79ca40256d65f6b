"""
Keystone Indexer - RBAC event indexer for Soroban contracts

Polls a ledger's event stream for role-based access control events,
projects them into current-state role and membership tables, and keeps a
permanent audit log that the derived state can always be rebuilt from.
"""

__version__ = "0.3.0"

from .events import EventKind, RawEvent, RoleEvent, parse_event
from .persistence import CheckpointStore, IndexerDB
from .projection import StateProjector

__all__ = [
    "parse_event",
    "EventKind",
    "RawEvent",
    "RoleEvent",
    "IndexerDB",
    "CheckpointStore",
    "StateProjector",
]
