"""Plain-dict views of query records, shared by the read API and ``--json``."""

from __future__ import annotations

from typing import Any, Optional

from ..persistence.queries import (
    AuditEventRecord,
    ExpiringGrant,
    MemberRecord,
    RoleRecord,
    Summary,
    SyncStatus,
    TrackedContract,
)


def contract_to_dict(contract: TrackedContract) -> dict[str, Any]:
    return {"id": contract.id, "first_seen": contract.first_seen}


def role_to_dict(role: RoleRecord) -> dict[str, Any]:
    return {
        "role": role.role,
        "admin_role": role.admin_role,
        "created_at": role.created_at,
        "member_count": role.member_count,
    }


def member_to_dict(member: MemberRecord) -> dict[str, Any]:
    return {
        "account": member.account,
        "expiry": member.expiry,
        "never_expires": member.never_expires,
        "last_updated": member.last_updated,
        "status": member.status.value,
    }


def expiring_to_dict(grant: ExpiringGrant) -> dict[str, Any]:
    return {
        "role": grant.role,
        "account": grant.account,
        "expiry": grant.expiry,
        "seconds_left": grant.seconds_left,
    }


def summary_to_dict(summary: Summary) -> dict[str, Any]:
    return {
        "role_count": summary.role_count,
        "grant_count": summary.grant_count,
        "expiring_soon": summary.expiring_soon,
        "expired": summary.expired,
        "event_count": summary.event_count,
    }


def event_to_dict(event: AuditEventRecord) -> dict[str, Any]:
    return {
        "id": event.id,
        "event_type": event.event_type,
        "payload": event.payload,
        "tx_hash": event.tx_hash,
        "ledger": event.ledger,
        "created_at": event.created_at,
    }


def status_to_dict(status: SyncStatus, now: Optional[int] = None) -> dict[str, Any]:
    """Sync status, with ``age_seconds`` since the last checkpoint write."""
    age = None
    if now is not None and status.updated_at is not None:
        age = max(0, now - status.updated_at)
    return {
        "contract_id": status.contract_id,
        "tracked": status.tracked,
        "has_data": status.has_data,
        "position": status.position,
        "updated_at": status.updated_at,
        "age_seconds": age,
    }
