"""Event models: raw ledger records and the typed domain events parsed from them.

``RoleEvent`` is the unit the projector applies and the audit log stores.
Its payload form (``to_payload`` / ``from_payload``) is what lands in the
``events.payload`` column, so the derived tables can be rebuilt from the
audit log alone.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Union


class EventKind(str, enum.Enum):
    """The closed set of RBAC events the contract emits."""

    ROLE_CREATED = "RoleCreated"
    ROLE_GRANTED = "RoleGranted"
    ROLE_REVOKED = "RoleRevoked"
    ROLE_ADMIN_CHANGED = "RoleAdminChanged"
    ROLE_EXPIRED = "RoleExpired"


@dataclass(frozen=True)
class RawEvent:
    """One record from the ledger's event stream, before decoding.

    ``topics`` and ``value`` hold ScVals in Soroban's JSON form (or already
    native Python values). ``ledger_closed_at`` is epoch seconds when the
    source reported a close time.
    """

    topics: list[Any]
    value: Any
    tx_hash: str
    ledger: int
    ledger_closed_at: Optional[int] = None
    event_id: str = ""


@dataclass(frozen=True)
class RoleEvent:
    """A decoded RBAC event for one contract."""

    contract_id: str
    kind: EventKind
    role: str
    tx_hash: str
    ledger: int
    timestamp: int
    account: Optional[str] = None
    expiry: Optional[int] = None
    admin_role: Optional[str] = None
    previous_admin: Optional[str] = None
    new_admin: Optional[str] = None
    # Account that granted or revoked; None for other kinds.
    actor: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Serialisable form stored as the audit row's payload."""
        payload = asdict(self)
        payload["kind"] = self.kind.value
        return {k: v for k, v in payload.items() if v is not None}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RoleEvent":
        """Inverse of ``to_payload``; raises ``KeyError``/``ValueError`` on bad input."""
        data = dict(payload)
        data["kind"] = EventKind(data["kind"])
        return cls(**data)


@dataclass(frozen=True)
class UnrecognizedEvent:
    """An event whose type tag is not in the type table.

    Kept as an explicit variant so callers handle it deliberately; it is
    never projected and never written to the audit log.
    """

    contract_id: str
    tag: str
    tx_hash: str
    ledger: int
    topics: list[Any] = field(default_factory=list)


ParsedEvent = Union[RoleEvent, UnrecognizedEvent]
