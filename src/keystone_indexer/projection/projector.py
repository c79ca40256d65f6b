"""Apply RBAC domain events to the derived tables and the audit log.

Every write is an upsert or a delete-if-exists, so applying the same
sequence of events again converges to the same roles and memberships.
The audit log is the exception: it records every application, duplicates
included, and is the input ``rebuild`` folds over.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Optional

from ..events.models import EventKind, RoleEvent
from ..exceptions import StorageWriteError
from ..logging_config import get_logger
from ..persistence.database import transaction

logger = get_logger(__name__)


class StateProjector:
    """Projects ``RoleEvent``s into ``roles``, ``role_members`` and ``events``.

    Parameters
    ----------
    conn:
        An autocommit ``sqlite3.Connection`` from ``IndexerDB.connect()``.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def apply(self, event: RoleEvent) -> None:
        """Apply one event and append its audit row in a single transaction.

        Raises:
            StorageWriteError: If any write fails; nothing of the event is
                left behind in that case.
        """
        try:
            with transaction(self.conn):
                self._project(event)
                self._append_audit(event)
        except sqlite3.Error as e:
            raise StorageWriteError("apply", str(e)) from e

    def rebuild(self, contract_id: Optional[str] = None) -> int:
        """Recompute the derived tables by folding the audit log in order.

        Clears ``roles`` and ``role_members`` (for one contract, or all) and
        replays every audit row without appending new ones.

        Returns:
            Number of audit rows replayed.
        """
        where = "" if contract_id is None else " WHERE contract_id = ?"
        params: tuple = () if contract_id is None else (contract_id,)
        try:
            with transaction(self.conn) as c:
                c.execute(f"DELETE FROM role_members{where}", params)
                c.execute(f"DELETE FROM roles{where}", params)
                rows = c.execute(
                    f"SELECT payload FROM events{where} ORDER BY id", params
                ).fetchall()
                for row in rows:
                    self._project(RoleEvent.from_payload(json.loads(row["payload"])))
        except sqlite3.Error as e:
            raise StorageWriteError("rebuild", str(e)) from e

        logger.info("Rebuilt derived state from %d audit events", len(rows))
        return len(rows)

    # ── projection ────────────────────────────────────────────────

    def _project(self, event: RoleEvent) -> None:
        kind = event.kind
        if kind is EventKind.ROLE_CREATED:
            self._role_created(event)
        elif kind is EventKind.ROLE_GRANTED:
            self._role_granted(event)
        elif kind is EventKind.ROLE_REVOKED or kind is EventKind.ROLE_EXPIRED:
            self._membership_ended(event)
        elif kind is EventKind.ROLE_ADMIN_CHANGED:
            self._admin_changed(event)
        else:
            raise AssertionError(f"unhandled event kind {kind!r}")

    def _role_created(self, event: RoleEvent) -> None:
        # A duplicate keeps the original created_at and admin_role.
        self.conn.execute(
            """
            INSERT INTO roles (contract_id, role, admin_role, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(contract_id, role) DO NOTHING
            """,
            (event.contract_id, event.role, event.admin_role, event.timestamp),
        )
        logger.debug("Role created: %s (admin: %s)", event.role, event.admin_role)

    def _role_granted(self, event: RoleEvent) -> None:
        self.conn.execute(
            """
            INSERT INTO role_members (contract_id, role, account, expiry, last_updated)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(contract_id, role, account) DO UPDATE SET
                expiry       = excluded.expiry,
                last_updated = excluded.last_updated
            """,
            (
                event.contract_id,
                event.role,
                event.account,
                event.expiry or 0,
                event.timestamp,
            ),
        )
        logger.debug("Role granted: %s to %s (expiry %s)", event.role, event.account, event.expiry)

    def _membership_ended(self, event: RoleEvent) -> None:
        self.conn.execute(
            "DELETE FROM role_members WHERE contract_id = ? AND role = ? AND account = ?",
            (event.contract_id, event.role, event.account),
        )
        verb = "expired" if event.kind is EventKind.ROLE_EXPIRED else "revoked"
        logger.debug("Role %s: %s for %s", verb, event.role, event.account)

    def _admin_changed(self, event: RoleEvent) -> None:
        exists = self.conn.execute(
            "SELECT 1 FROM roles WHERE contract_id = ? AND role = ?",
            (event.contract_id, event.role),
        ).fetchone()
        if exists is None:
            logger.warning(
                "Admin change for unknown role %s on %s; inserting placeholder",
                event.role,
                event.contract_id,
            )
        self.conn.execute(
            """
            INSERT INTO roles (contract_id, role, admin_role, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(contract_id, role) DO UPDATE SET admin_role = excluded.admin_role
            """,
            (event.contract_id, event.role, event.new_admin, event.timestamp),
        )
        logger.debug(
            "Role admin changed: %s from %s to %s",
            event.role,
            event.previous_admin,
            event.new_admin,
        )

    def _append_audit(self, event: RoleEvent) -> None:
        self.conn.execute(
            """
            INSERT INTO events (contract_id, event_type, payload, tx_hash, ledger, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                event.contract_id,
                event.kind.value,
                json.dumps(event.to_payload(), sort_keys=True),
                event.tx_hash,
                event.ledger,
                event.timestamp,
            ),
        )
