"""Ingestion: event source client, fetch retry policy and the polling loop."""

from .poller import Poller, PollerPhase, PollResult, page_checkpoint
from .retry import fetch_retrying
from .source import EventPage, EventSource, SorobanEventSource

__all__ = [
    "Poller",
    "PollerPhase",
    "PollResult",
    "page_checkpoint",
    "fetch_retrying",
    "EventPage",
    "EventSource",
    "SorobanEventSource",
]
