"""Tests for projection/projector.py - idempotent projection and replay."""

import pytest

from keystone_indexer.events import EventKind
from keystone_indexer.exceptions import StorageWriteError
from keystone_indexer.projection import StateProjector


def _roles(conn):
    rows = conn.execute("SELECT role, admin_role, created_at FROM roles ORDER BY role").fetchall()
    return [tuple(r) for r in rows]


def _members(conn):
    rows = conn.execute(
        "SELECT role, account, expiry, last_updated FROM role_members ORDER BY role, account"
    ).fetchall()
    return [tuple(r) for r in rows]


def _audit_count(conn):
    return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]


class TestRoleCreated:
    def test_creates_role(self, conn, make_event):
        """Scenario: a created role is stored with its admin role."""
        StateProjector(conn).apply(
            make_event(EventKind.ROLE_CREATED, "OPERATOR", admin_role="DEF_ADMIN")
        )
        assert _roles(conn) == [("OPERATOR", "DEF_ADMIN", 1_700_000_000)]

    def test_duplicate_keeps_original(self, conn, make_event):
        projector = StateProjector(conn)
        projector.apply(make_event(EventKind.ROLE_CREATED, admin_role="DEF_ADMIN", timestamp=10))
        projector.apply(make_event(EventKind.ROLE_CREATED, admin_role="OTHER", timestamp=20))

        assert _roles(conn) == [("OPERATOR", "DEF_ADMIN", 10)]
        assert _audit_count(conn) == 2


class TestMembership:
    def test_grant_then_revoke(self, conn, make_event, alice):
        """Revoking removes the membership; both events stay in the audit log."""
        projector = StateProjector(conn)
        projector.apply(make_event(EventKind.ROLE_GRANTED, account=alice, expiry=0, actor="G1"))
        projector.apply(make_event(EventKind.ROLE_REVOKED, account=alice, actor="G1"))

        assert _members(conn) == []
        assert _audit_count(conn) == 2

    def test_grant_is_idempotent(self, conn, make_event, alice):
        projector = StateProjector(conn)
        grant = make_event(EventKind.ROLE_GRANTED, account=alice, expiry=500)
        projector.apply(grant)
        once = _members(conn)
        projector.apply(grant)

        assert _members(conn) == once == [("OPERATOR", alice, 500, 1_700_000_000)]

    def test_regrant_overwrites_expiry(self, conn, make_event, alice):
        """Later grants in stream order win."""
        projector = StateProjector(conn)
        projector.apply(make_event(EventKind.ROLE_GRANTED, account=alice, expiry=500, timestamp=1))
        projector.apply(make_event(EventKind.ROLE_GRANTED, account=alice, expiry=0, timestamp=2))

        assert _members(conn) == [("OPERATOR", alice, 0, 2)]

    def test_revoke_missing_is_noop(self, conn, make_event, alice):
        StateProjector(conn).apply(make_event(EventKind.ROLE_REVOKED, account=alice))
        assert _members(conn) == []
        assert _audit_count(conn) == 1

    def test_expired_removes_membership(self, conn, make_event, alice, bob):
        projector = StateProjector(conn)
        projector.apply(make_event(EventKind.ROLE_GRANTED, account=alice, expiry=50))
        projector.apply(make_event(EventKind.ROLE_GRANTED, account=bob, expiry=0))
        projector.apply(make_event(EventKind.ROLE_EXPIRED, account=alice, expiry=50))
        projector.apply(make_event(EventKind.ROLE_EXPIRED, account=alice, expiry=50))

        assert [m[1] for m in _members(conn)] == [bob]
        kinds = [r[0] for r in conn.execute("SELECT event_type FROM events ORDER BY id")]
        assert kinds == ["RoleGranted", "RoleGranted", "RoleExpired", "RoleExpired"]

    def test_memberships_are_scoped_by_contract(self, conn, make_event, alice):
        projector = StateProjector(conn)
        projector.apply(make_event(EventKind.ROLE_GRANTED, account=alice, expiry=0))
        projector.apply(
            make_event(EventKind.ROLE_REVOKED, account=alice, contract_id="COTHER")
        )
        assert len(_members(conn)) == 1


class TestAdminChanged:
    def test_updates_admin_role(self, conn, make_event):
        projector = StateProjector(conn)
        projector.apply(make_event(EventKind.ROLE_CREATED, admin_role="DEF_ADMIN", timestamp=10))
        change = make_event(
            EventKind.ROLE_ADMIN_CHANGED,
            previous_admin="DEF_ADMIN",
            new_admin="OPS_ADMIN",
            timestamp=20,
        )
        projector.apply(change)
        projector.apply(change)

        assert _roles(conn) == [("OPERATOR", "OPS_ADMIN", 10)]

    def test_unknown_role_gets_placeholder(self, conn, make_event):
        change = make_event(
            EventKind.ROLE_ADMIN_CHANGED,
            "GHOST",
            previous_admin="DEF_ADMIN",
            new_admin="OPS_ADMIN",
            timestamp=33,
        )
        StateProjector(conn).apply(change)
        assert _roles(conn) == [("GHOST", "OPS_ADMIN", 33)]


class TestAudit:
    def test_audit_row_contents(self, conn, make_event, alice):
        StateProjector(conn).apply(
            make_event(
                EventKind.ROLE_GRANTED, account=alice, expiry=9, actor="G1", tx_hash="h1", ledger=7
            )
        )
        row = conn.execute(
            "SELECT event_type, tx_hash, ledger, created_at, payload FROM events"
        ).fetchone()
        assert row["event_type"] == "RoleGranted"
        assert row["tx_hash"] == "h1"
        assert row["ledger"] == 7
        assert row["created_at"] == 1_700_000_000
        assert '"account"' in row["payload"]

    def test_failed_apply_leaves_nothing(self, conn, make_event, alice):
        conn.execute("DROP TABLE events")
        with pytest.raises(StorageWriteError):
            StateProjector(conn).apply(make_event(EventKind.ROLE_GRANTED, account=alice, expiry=0))
        assert _members(conn) == []


class TestRebuild:
    def _sequence(self, make_event, alice, bob):
        return [
            make_event(EventKind.ROLE_CREATED, "OPERATOR", admin_role="DEF_ADMIN", timestamp=1),
            make_event(EventKind.ROLE_CREATED, "MINTER", admin_role="DEF_ADMIN", timestamp=2),
            make_event(EventKind.ROLE_GRANTED, "OPERATOR", account=alice, expiry=0, timestamp=3),
            make_event(EventKind.ROLE_GRANTED, "MINTER", account=bob, expiry=99, timestamp=4),
            make_event(
                EventKind.ROLE_ADMIN_CHANGED,
                "MINTER",
                previous_admin="DEF_ADMIN",
                new_admin="OPERATOR",
                timestamp=5,
            ),
            make_event(EventKind.ROLE_REVOKED, "OPERATOR", account=alice, timestamp=6),
            make_event(EventKind.ROLE_GRANTED, "OPERATOR", account=bob, expiry=7, timestamp=7),
        ]

    def test_rebuild_reproduces_derived_state(self, conn, make_event, alice, bob):
        projector = StateProjector(conn)
        for event in self._sequence(make_event, alice, bob):
            projector.apply(event)
        roles_before, members_before = _roles(conn), _members(conn)

        conn.execute("DELETE FROM role_members")
        conn.execute("UPDATE roles SET admin_role = 'CORRUPT'")
        replayed = projector.rebuild()

        assert replayed == 7
        assert _roles(conn) == roles_before
        assert _members(conn) == members_before
        assert _audit_count(conn) == 7

    def test_replaying_a_prefix_converges(self, conn, make_event, alice, bob):
        """Re-applying the first events again yields the single-pass state."""
        events = self._sequence(make_event, alice, bob)
        projector = StateProjector(conn)
        for event in events:
            projector.apply(event)
        single_pass = (_roles(conn), _members(conn))

        for event in events[:3] + events:
            projector.apply(event)

        assert (_roles(conn), _members(conn)) == single_pass
        assert _audit_count(conn) == 17

        projector.rebuild()
        assert (_roles(conn), _members(conn)) == single_pass

    def test_rebuild_one_contract(self, conn, make_event, alice):
        projector = StateProjector(conn)
        projector.apply(make_event(EventKind.ROLE_GRANTED, account=alice, expiry=0))
        projector.apply(
            make_event(EventKind.ROLE_GRANTED, account=alice, expiry=0, contract_id="COTHER")
        )
        conn.execute("DELETE FROM role_members")

        assert projector.rebuild("COTHER") == 1
        rows = conn.execute("SELECT contract_id FROM role_members").fetchall()
        assert [r[0] for r in rows] == ["COTHER"]

    def test_rebuild_error_is_wrapped(self, conn):
        conn.execute("DROP TABLE role_members")
        with pytest.raises(StorageWriteError):
            StateProjector(conn).rebuild()
