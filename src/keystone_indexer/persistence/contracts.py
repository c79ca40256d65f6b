"""Tracked-contract registration."""

import sqlite3
import time
from typing import Optional

from ..exceptions import StorageWriteError
from ..logging_config import get_logger

logger = get_logger(__name__)


def register_contract(
    conn: sqlite3.Connection, contract_id: str, now: Optional[int] = None
) -> bool:
    """Add *contract_id* to the tracked set.

    Idempotent: registering an id that is already tracked is a no-op and
    leaves its ``first_seen`` untouched.

    Returns:
        ``True`` if the contract was newly registered.
    """
    if not contract_id:
        raise ValueError("contract_id must not be empty")
    first_seen = int(time.time()) if now is None else now
    try:
        cur = conn.execute(
            "INSERT OR IGNORE INTO contracts (id, first_seen) VALUES (?, ?)",
            (contract_id, first_seen),
        )
    except sqlite3.Error as e:
        raise StorageWriteError("register_contract", str(e)) from e

    created = cur.rowcount == 1
    if created:
        logger.info("Registered contract %s", contract_id)
    return created


def tracked_contract_ids(conn: sqlite3.Connection) -> list[str]:
    """Return every tracked contract id in registration order."""
    rows = conn.execute("SELECT id FROM contracts ORDER BY first_seen, id").fetchall()
    return [r["id"] for r in rows]
