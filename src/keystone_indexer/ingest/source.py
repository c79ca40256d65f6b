"""Ledger event source: Soroban JSON-RPC ``getEvents`` over httpx.

The poller depends only on the ``EventSource`` protocol, so tests and
alternative backends can supply pages without a network.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol

import httpx

from ..events.models import RawEvent
from ..exceptions import SourceResponseError, SourceUnavailableError
from ..logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EventPage:
    """One bounded batch of events, in stream order.

    ``latest_ledger`` is the newest ledger the source knew about when it
    answered, or ``None`` if it did not say. ``cursor`` is the paging token
    of the last record the source returned and ``records`` how many it
    returned; both count records that were dropped as unusable, so a full
    page is recognised even when some of it could not be decoded.
    """

    events: list[RawEvent] = field(default_factory=list)
    latest_ledger: Optional[int] = None
    cursor: Optional[str] = None
    records: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.events) if self.records is None else self.records

    @property
    def last_cursor(self) -> Optional[str]:
        if self.cursor is not None:
            return self.cursor
        if self.events and self.events[-1].event_id:
            return self.events[-1].event_id
        return None


class EventSource(Protocol):
    async def fetch_events(
        self,
        contract_id: str,
        after: Optional[int],
        limit: int,
        cursor: Optional[str] = None,
    ) -> EventPage:
        """Return events of *contract_id* in ledgers strictly after *after*.

        ``after=None`` means from the earliest ledger the source retains.
        With a *cursor*, the page instead starts right after the event that
        paging token names and *after* is ignored.
        Raises ``SourceError`` on any transient failure.
        """
        ...


class SorobanEventSource:
    """``EventSource`` backed by a Soroban RPC server.

    Usage::

        async with SorobanEventSource("http://127.0.0.1:8000/soroban/rpc") as source:
            page = await source.fetch_events(contract_id, after=None, limit=1000)
            more = await source.fetch_events(contract_id, None, 1000, cursor=page.last_cursor)
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "SorobanEventSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── JSON-RPC ──────────────────────────────────────────────────

    async def _call(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        body: dict[str, Any] = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            body["params"] = params

        try:
            response = await self._client.post(self.rpc_url, json=body)
        except httpx.TimeoutException as e:
            raise SourceUnavailableError(self.rpc_url, f"timeout: {e}") from e
        except httpx.TransportError as e:
            raise SourceUnavailableError(self.rpc_url, str(e) or type(e).__name__) from e

        if response.status_code >= 500:
            raise SourceUnavailableError(self.rpc_url, f"HTTP {response.status_code}")
        if response.status_code >= 400:
            raise SourceResponseError(method, f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceResponseError(method, "response is not JSON") from e

        if not isinstance(payload, dict):
            raise SourceResponseError(method, "response is not a JSON-RPC object")
        error = payload.get("error")
        if error is not None:
            message = error.get("message", "unknown error") if isinstance(error, dict) else error
            code = error.get("code") if isinstance(error, dict) else None
            raise SourceResponseError(method, str(message), rpc_code=code)
        if "result" not in payload:
            raise SourceResponseError(method, "response has no result")
        return payload["result"]

    async def ledger_bounds(self) -> tuple[int, int]:
        """Return (oldest retained ledger, latest ledger) from ``getHealth``."""
        result = await self._call("getHealth")
        try:
            return int(result["oldestLedger"]), int(result["latestLedger"])
        except (KeyError, TypeError, ValueError) as e:
            raise SourceResponseError("getHealth", f"missing ledger bounds: {e}") from e

    async def fetch_events(
        self,
        contract_id: str,
        after: Optional[int],
        limit: int,
        cursor: Optional[str] = None,
    ) -> EventPage:
        filters = [{"type": "contract", "contractIds": [contract_id]}]
        if cursor is not None:
            # startLedger and cursor are mutually exclusive in getEvents
            return await self._get_events(
                {
                    "filters": filters,
                    "pagination": {"cursor": cursor, "limit": limit},
                    "xdrFormat": "json",
                },
                latest=None,
            )

        oldest, latest = await self.ledger_bounds()

        start = oldest if after is None else after + 1
        if start > latest:
            return EventPage([], latest)
        if start < oldest:
            logger.warning(
                "Ledgers %d-%d for %s are outside the source's retention window",
                start,
                oldest - 1,
                contract_id,
            )
            start = oldest

        return await self._get_events(
            {
                "startLedger": start,
                "filters": filters,
                "pagination": {"limit": limit},
                "xdrFormat": "json",
            },
            latest=latest,
        )

    async def _get_events(self, params: dict[str, Any], latest: Optional[int]) -> EventPage:
        result = await self._call("getEvents", params)
        if not isinstance(result, dict):
            raise SourceResponseError("getEvents", "result is not an object")

        records = result.get("events") or []
        events = []
        for item in records:
            raw = _to_raw_event(item)
            if raw is not None:
                events.append(raw)

        cursor = None
        if records and isinstance(records[-1], dict):
            token = records[-1].get("id") or records[-1].get("pagingToken")
            cursor = str(token) if token else None

        reported = result.get("latestLedger")
        return EventPage(
            events,
            int(reported) if reported is not None else latest,
            cursor=cursor,
            records=len(records),
        )


def _to_raw_event(item: Any) -> Optional[RawEvent]:
    """Map one ``getEvents`` entry to a ``RawEvent``; ``None`` if unusable."""
    try:
        topics = item["topicJson"] if "topicJson" in item else item["topic"]
        value = item["valueJson"] if "valueJson" in item else item.get("value")
        ledger = int(item["ledger"])
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Ignoring malformed event record from source: %s", e)
        return None
    if not isinstance(topics, list):
        logger.warning("Ignoring event record with non-list topics in ledger %d", ledger)
        return None

    return RawEvent(
        topics=topics,
        value=value,
        tx_hash=str(item.get("txHash") or item.get("id") or ""),
        ledger=ledger,
        ledger_closed_at=_parse_close_time(item.get("ledgerClosedAt")),
        event_id=str(item.get("id") or item.get("pagingToken") or ""),
    )


def _parse_close_time(value: Any) -> Optional[int]:
    """Ledger close time as epoch seconds (ISO-8601 or numeric input)."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value)
    if text.isdigit():
        return int(text)
    try:
        return int(datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return None
