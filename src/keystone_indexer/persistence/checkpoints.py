"""Durable per-contract resume point in the event stream."""

import sqlite3
import time
from dataclasses import dataclass
from typing import Optional

from ..exceptions import StorageWriteError
from ..logging_config import get_logger
from .database import transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class Checkpoint:
    """Where a contract's event stream resumes.

    ``position`` is the last ledger whose events are all applied, or
    ``None`` when nothing has been indexed yet. ``cursor`` is the paging
    token of the last applied event when a page stopped partway through
    the ledger after ``position``; the next fetch resumes right after it.
    """

    contract_id: str
    position: Optional[int] = None
    cursor: Optional[str] = None

    @property
    def progress(self) -> tuple[int, bool, str]:
        """Sort key over stream progress.

        Paging tokens are fixed-width and zero-padded, so string order is
        stream order.
        """
        position = -1 if self.position is None else self.position
        return position, self.cursor is not None, self.cursor or ""

    def advance(self, position: int, cursor: Optional[str] = None) -> "Checkpoint":
        """Return a checkpoint at *position* / *cursor*, never moving backwards."""
        candidate = Checkpoint(self.contract_id, position, cursor)
        if self.position is not None and candidate.progress <= self.progress:
            return self
        return candidate


class CheckpointStore:
    """Reads and writes checkpoints on an open indexer connection.

    Each write is its own transaction, separate from the event
    transactions that precede it.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, contract_id: str) -> Optional[int]:
        """Return the stored position for *contract_id*, or ``None``."""
        return self.load(contract_id).position

    def load(self, contract_id: str) -> Checkpoint:
        """Return the stored checkpoint as a ``Checkpoint`` record."""
        row = self.conn.execute(
            "SELECT position, cursor FROM checkpoints WHERE contract_id = ?", (contract_id,)
        ).fetchone()
        if row is None:
            return Checkpoint(contract_id)
        return Checkpoint(contract_id, int(row["position"]), row["cursor"])

    def save(self, checkpoint: Checkpoint, now: Optional[int] = None) -> Checkpoint:
        """Store *checkpoint* and return what is stored afterwards.

        A checkpoint behind the stored one never replaces it; ``updated_at``
        is refreshed either way.

        Raises:
            StorageWriteError: If the write fails.
        """
        if checkpoint.position is None or checkpoint.position < 0:
            raise ValueError(
                f"checkpoint position must be non-negative, got {checkpoint.position}"
            )
        updated_at = int(time.time()) if now is None else now
        try:
            with transaction(self.conn) as c:
                stored = self.load(checkpoint.contract_id).advance(
                    checkpoint.position, checkpoint.cursor
                )
                c.execute(
                    """
                    INSERT INTO checkpoints (contract_id, position, cursor, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(contract_id) DO UPDATE SET
                        position   = excluded.position,
                        cursor     = excluded.cursor,
                        updated_at = excluded.updated_at
                    """,
                    (stored.contract_id, stored.position, stored.cursor, updated_at),
                )
        except sqlite3.Error as e:
            raise StorageWriteError("checkpoint", str(e)) from e

        logger.debug(
            "Checkpoint for %s at ledger %d (cursor %s)",
            stored.contract_id,
            stored.position,
            stored.cursor or "-",
        )
        return stored

    def set(
        self,
        contract_id: str,
        position: int,
        cursor: Optional[str] = None,
        now: Optional[int] = None,
    ) -> int:
        """Store *position* (and *cursor*) for *contract_id*; return the stored position."""
        return self.save(Checkpoint(contract_id, position, cursor), now=now).position
