"""Turn raw ledger events into typed RBAC domain events.

The contract publishes each event with a short symbol tag in topic 0, the
role in topic 1 and, for membership events, the account in topic 2:

    RoleCreat  (tag, role)           value: admin_role
    RoleGrant  (tag, role, account)  value: (expiry, granted_by)
    RoleRevok  (tag, role, account)  value: revoked_by
    AdminChg   (tag, role)           value: (previous_admin, new_admin)
    RoleExpir  (tag, role, account)  value: expired_at

Unknown tags come back as ``UnrecognizedEvent``; malformed events come back
as ``None``. Neither ever raises out of ``parse_event``.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

from ..exceptions import EventDecodeError
from ..logging_config import get_logger
from .models import EventKind, ParsedEvent, RawEvent, RoleEvent, UnrecognizedEvent
from .scval import to_native

logger = get_logger(__name__)

TYPE_TABLE: dict[str, EventKind] = {
    "RoleCreat": EventKind.ROLE_CREATED,
    "RoleGrant": EventKind.ROLE_GRANTED,
    "RoleRevok": EventKind.ROLE_REVOKED,
    "AdminChg": EventKind.ROLE_ADMIN_CHANGED,
    "RoleExpir": EventKind.ROLE_EXPIRED,
}

# Exact number of topics each kind is published with.
_TOPIC_ARITY: dict[EventKind, int] = {
    EventKind.ROLE_CREATED: 2,
    EventKind.ROLE_ADMIN_CHANGED: 2,
    EventKind.ROLE_GRANTED: 3,
    EventKind.ROLE_REVOKED: 3,
    EventKind.ROLE_EXPIRED: 3,
}


def parse_event(contract_id: str, raw: RawEvent) -> Optional[ParsedEvent]:
    """Decode *raw* into a ``RoleEvent``.

    Returns:
        ``RoleEvent`` for the five known kinds, ``UnrecognizedEvent`` for an
        unknown tag, or ``None`` when the event cannot be decoded. Both
        non-event outcomes are logged.
    """
    try:
        return _parse(contract_id, raw)
    except (EventDecodeError, TypeError, ValueError) as e:
        logger.warning(
            "Dropping malformed event %s (ledger %d, tx %s): %s",
            raw.event_id or "?",
            raw.ledger,
            raw.tx_hash,
            e,
        )
        return None


def _parse(contract_id: str, raw: RawEvent) -> ParsedEvent:
    if not isinstance(raw.topics, (list, tuple)) or not raw.topics:
        raise EventDecodeError("event has no topics", raw.topics)

    topics = [to_native(t) for t in raw.topics]
    tag = topics[0]
    if not isinstance(tag, str):
        raise EventDecodeError("type tag is not a symbol", tag)

    kind = TYPE_TABLE.get(tag)
    if kind is None:
        logger.warning(
            "Skipping unrecognized event tag %r for %s (ledger %d)", tag, contract_id, raw.ledger
        )
        return UnrecognizedEvent(
            contract_id=contract_id,
            tag=tag,
            tx_hash=raw.tx_hash,
            ledger=raw.ledger,
            topics=topics,
        )

    expected = _TOPIC_ARITY[kind]
    if len(topics) != expected:
        raise EventDecodeError(f"{kind.value} expects {expected} topics, got {len(topics)}", topics)

    fields: dict[str, Any] = {"role": _require_str(topics[1], "role")}
    if expected == 3:
        fields["account"] = _require_str(topics[2], "account")

    fields.update(_VALUE_DECODERS[kind](to_native(raw.value)))

    timestamp = raw.ledger_closed_at if raw.ledger_closed_at is not None else int(time.time())
    return RoleEvent(
        contract_id=contract_id,
        kind=kind,
        tx_hash=raw.tx_hash,
        ledger=raw.ledger,
        timestamp=timestamp,
        **fields,
    )


# ── value decoders ────────────────────────────────────────────────


def _created_value(value: Any) -> dict[str, Any]:
    return {"admin_role": _require_str(value, "admin_role")}


def _granted_value(value: Any) -> dict[str, Any]:
    expiry, granted_by = _require_pair(value, "grant value")
    return {
        "expiry": _require_timestamp(expiry, "expiry"),
        "actor": _require_str(granted_by, "granted_by"),
    }


def _revoked_value(value: Any) -> dict[str, Any]:
    return {"actor": _require_str(value, "revoked_by")}


def _admin_changed_value(value: Any) -> dict[str, Any]:
    previous_admin, new_admin = _require_pair(value, "admin change value")
    return {
        "previous_admin": _require_str(previous_admin, "previous_admin"),
        "new_admin": _require_str(new_admin, "new_admin"),
    }


def _expired_value(value: Any) -> dict[str, Any]:
    return {"expiry": _require_timestamp(value, "expired_at")}


_VALUE_DECODERS: dict[EventKind, Callable[[Any], dict[str, Any]]] = {
    EventKind.ROLE_CREATED: _created_value,
    EventKind.ROLE_GRANTED: _granted_value,
    EventKind.ROLE_REVOKED: _revoked_value,
    EventKind.ROLE_ADMIN_CHANGED: _admin_changed_value,
    EventKind.ROLE_EXPIRED: _expired_value,
}


def _require_str(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise EventDecodeError(f"{name} must be a non-empty string", value)
    return value


def _require_pair(value: Any, name: str) -> tuple[Any, Any]:
    if not isinstance(value, list) or len(value) != 2:
        raise EventDecodeError(f"{name} must be a pair", value)
    return value[0], value[1]


def _require_timestamp(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise EventDecodeError(f"{name} must be a non-negative integer", value)
    return value
