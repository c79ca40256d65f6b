"""Read-only queries over the derived tables and the audit log.

These back the CLI listings and the HTTP read API. Nothing here writes;
callers that only read should open the database with ``read_only=True``.
"""

import enum
import json
import sqlite3
import time
from dataclasses import dataclass
from typing import Any, Optional

DEFAULT_EXPIRING_WINDOW = 24 * 3600


class MemberStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


def member_status(expiry: int, now: int) -> MemberStatus:
    """Classify a grant at time *now*.

    ``expiry == 0`` never expires. A grant is expired only once *now* is
    strictly past its expiry, so ``expiry == now`` is still active.
    """
    if expiry != 0 and expiry < now:
        return MemberStatus.EXPIRED
    return MemberStatus.ACTIVE


@dataclass
class TrackedContract:
    id: str
    first_seen: int


@dataclass
class RoleRecord:
    role: str
    admin_role: Optional[str]
    created_at: int
    member_count: int = 0


@dataclass
class MemberRecord:
    account: str
    expiry: int
    last_updated: int
    status: MemberStatus

    @property
    def never_expires(self) -> bool:
        return self.expiry == 0


@dataclass
class ExpiringGrant:
    role: str
    account: str
    expiry: int
    seconds_left: int


@dataclass
class Summary:
    """Aggregate counts for one contract."""

    role_count: int
    grant_count: int
    expiring_soon: int
    expired: int
    event_count: int


@dataclass
class AuditEventRecord:
    id: int
    event_type: str
    payload: dict[str, Any]
    tx_hash: Optional[str]
    ledger: Optional[int]
    created_at: int


@dataclass
class SyncStatus:
    """How far the indexer has read a contract's stream.

    ``position`` is ``None`` until the first checkpoint is written, which
    consumers should present as "no data yet".
    """

    contract_id: str
    tracked: bool
    position: Optional[int]
    updated_at: Optional[int]

    @property
    def has_data(self) -> bool:
        return self.position is not None


def _now(now: Optional[int]) -> int:
    return int(time.time()) if now is None else now


class IndexQuery:
    """Read-only queries against the indexer database.

    Parameters
    ----------
    conn:
        An open ``sqlite3.Connection`` with ``row_factory = sqlite3.Row``
        (as returned by ``IndexerDB.connect()``).
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ── contracts ─────────────────────────────────────────────────────

    def list_contracts(self) -> list[TrackedContract]:
        rows = self.conn.execute(
            "SELECT id, first_seen FROM contracts ORDER BY first_seen, id"
        ).fetchall()
        return [TrackedContract(id=r["id"], first_seen=r["first_seen"]) for r in rows]

    def get_sync_status(self, contract_id: str) -> SyncStatus:
        """Return the checkpoint position for *contract_id* (if any)."""
        tracked = (
            self.conn.execute("SELECT 1 FROM contracts WHERE id = ?", (contract_id,)).fetchone()
            is not None
        )
        row = self.conn.execute(
            "SELECT position, updated_at FROM checkpoints WHERE contract_id = ?",
            (contract_id,),
        ).fetchone()
        return SyncStatus(
            contract_id=contract_id,
            tracked=tracked,
            position=None if row is None else row["position"],
            updated_at=None if row is None else row["updated_at"],
        )

    # ── roles ─────────────────────────────────────────────────────────

    def list_roles(self, contract_id: str) -> list[RoleRecord]:
        """All roles of a contract, newest first, with current member counts."""
        rows = self.conn.execute(
            """
            SELECT r.role, r.admin_role, r.created_at,
                   (SELECT COUNT(*) FROM role_members m
                     WHERE m.contract_id = r.contract_id AND m.role = r.role) AS member_count
            FROM roles r
            WHERE r.contract_id = ?
            ORDER BY r.created_at DESC, r.role
            """,
            (contract_id,),
        ).fetchall()
        return [
            RoleRecord(
                role=r["role"],
                admin_role=r["admin_role"],
                created_at=r["created_at"],
                member_count=r["member_count"],
            )
            for r in rows
        ]

    def role_exists(self, contract_id: str, role: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM roles WHERE contract_id = ? AND role = ?", (contract_id, role)
        ).fetchone()
        return row is not None

    # ── members ───────────────────────────────────────────────────────

    def list_members(
        self, contract_id: str, role: str, now: Optional[int] = None
    ) -> list[MemberRecord]:
        """Members of *role* with their status relative to *now*."""
        now = _now(now)
        rows = self.conn.execute(
            """
            SELECT account, expiry, last_updated
            FROM role_members
            WHERE contract_id = ? AND role = ?
            ORDER BY last_updated DESC, account
            """,
            (contract_id, role),
        ).fetchall()
        return [
            MemberRecord(
                account=r["account"],
                expiry=r["expiry"],
                last_updated=r["last_updated"],
                status=member_status(r["expiry"], now),
            )
            for r in rows
        ]

    def list_expiring(
        self,
        contract_id: str,
        within_seconds: int = DEFAULT_EXPIRING_WINDOW,
        now: Optional[int] = None,
    ) -> list[ExpiringGrant]:
        """Grants that are still active but expire within the window.

        Matches ``now < expiry <= now + within_seconds``; grants that never
        expire or have already expired are excluded. Soonest first.
        """
        if within_seconds < 0:
            raise ValueError("within_seconds must be non-negative")
        now = _now(now)
        rows = self.conn.execute(
            """
            SELECT role, account, expiry
            FROM role_members
            WHERE contract_id = ?
              AND expiry > 0
              AND expiry > ?
              AND expiry <= ?
            ORDER BY expiry ASC, role, account
            """,
            (contract_id, now, now + within_seconds),
        ).fetchall()
        return [
            ExpiringGrant(
                role=r["role"],
                account=r["account"],
                expiry=r["expiry"],
                seconds_left=r["expiry"] - now,
            )
            for r in rows
        ]

    # ── aggregates ────────────────────────────────────────────────────

    def get_summary(
        self,
        contract_id: str,
        now: Optional[int] = None,
        window_seconds: int = DEFAULT_EXPIRING_WINDOW,
    ) -> Summary:
        now = _now(now)
        row = self.conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM roles WHERE contract_id = :c) AS role_count,
                (SELECT COUNT(*) FROM role_members WHERE contract_id = :c) AS grant_count,
                (SELECT COUNT(*) FROM role_members
                  WHERE contract_id = :c AND expiry > 0
                    AND expiry > :now AND expiry <= :horizon) AS expiring_soon,
                (SELECT COUNT(*) FROM role_members
                  WHERE contract_id = :c AND expiry > 0 AND expiry < :now) AS expired,
                (SELECT COUNT(*) FROM events WHERE contract_id = :c) AS event_count
            """,
            {"c": contract_id, "now": now, "horizon": now + window_seconds},
        ).fetchone()
        return Summary(
            role_count=row["role_count"],
            grant_count=row["grant_count"],
            expiring_soon=row["expiring_soon"],
            expired=row["expired"],
            event_count=row["event_count"],
        )

    # ── audit log ─────────────────────────────────────────────────────

    def list_recent_events(self, contract_id: str, limit: int = 10) -> list[AuditEventRecord]:
        """Most recent audit rows first, at most *limit*."""
        if limit < 1:
            raise ValueError("limit must be at least 1")
        rows = self.conn.execute(
            """
            SELECT id, event_type, payload, tx_hash, ledger, created_at
            FROM events
            WHERE contract_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (contract_id, limit),
        ).fetchall()
        return [
            AuditEventRecord(
                id=r["id"],
                event_type=r["event_type"],
                payload=json.loads(r["payload"]),
                tx_hash=r["tx_hash"],
                ledger=r["ledger"],
                created_at=r["created_at"],
            )
            for r in rows
        ]
