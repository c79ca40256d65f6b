"""Event models and the raw-to-domain event parser."""

from .models import EventKind, ParsedEvent, RawEvent, RoleEvent, UnrecognizedEvent
from .parser import TYPE_TABLE, parse_event

__all__ = [
    "EventKind",
    "ParsedEvent",
    "RawEvent",
    "RoleEvent",
    "UnrecognizedEvent",
    "TYPE_TABLE",
    "parse_event",
]
