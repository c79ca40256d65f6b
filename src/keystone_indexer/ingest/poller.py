"""Checkpointed polling loop: fetch → parse → project → checkpoint.

Per contract, one cycle walks ``IDLE → FETCHING → APPLYING → CHECKPOINTING
→ IDLE``. Contracts are visited one after another in a single asyncio
task; the only awaits are the fetch (with its backoff sleeps) and the
sleep between cycles.

The checkpoint only moves after every event of a page has been applied.
A crash or storage failure mid-page therefore re-fetches the whole page
next time, which projection tolerates because it is idempotent. A full
page leaves a paging-token cursor in the checkpoint so the next fetch
resumes right after its last event, even inside a single busy ledger.
"""

from __future__ import annotations

import asyncio
import enum
import signal
import sqlite3
from dataclasses import dataclass
from typing import Optional

from ..config import IndexerConfig
from ..events.models import RoleEvent, UnrecognizedEvent
from ..events.parser import parse_event
from ..exceptions import SourceError, StorageWriteError
from ..logging_config import get_logger
from ..persistence.checkpoints import Checkpoint, CheckpointStore
from ..persistence.contracts import tracked_contract_ids
from ..projection.projector import StateProjector
from .retry import Sleep, fetch_retrying
from .source import EventPage, EventSource

logger = get_logger(__name__)


class PollerPhase(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    APPLYING = "applying"
    CHECKPOINTING = "checkpointing"
    STOPPED = "stopped"


@dataclass
class PollResult:
    """Outcome of polling one contract once."""

    contract_id: str
    checkpoint: Checkpoint
    fetched: int = 0
    applied: int = 0
    unrecognized: int = 0
    malformed: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def page_checkpoint(checkpoint: Checkpoint, page: EventPage, page_size: int) -> Checkpoint:
    """Checkpoint to store once every event of *page* is applied.

    An empty or partial page drains the stream up to the source's latest
    ledger, so the checkpoint moves there and drops its cursor. A full page
    may stop partway through its last ledger: only the ledger before it
    counts as complete, and the paging token of the page's last record
    marks where the next fetch resumes inside the last one.
    """
    ledgers = [e.ledger for e in page.events]

    if page.size < page_size:
        reached = ledgers + ([page.latest_ledger] if page.latest_ledger is not None else [])
        if not reached:
            return checkpoint
        return checkpoint.advance(max(reached))

    previous = -1 if checkpoint.position is None else checkpoint.position
    complete = max(max(ledgers) - 1 if ledgers else 0, previous, 0)

    cursor = page.last_cursor
    if cursor is None:
        if ledgers and complete == previous:
            logger.warning(
                "Ledger %d holds at least %d events and the source gives no paging "
                "token; raise page_size to make progress",
                max(ledgers),
                page_size,
            )
        return checkpoint.advance(complete)
    return checkpoint.advance(complete, cursor)


class Poller:
    """Drives ingestion for every tracked contract.

    Usage::

        poller = Poller(db.conn, source, config)
        await poller.run()      # until SIGINT/SIGTERM or request_stop()

    Parameters
    ----------
    conn:
        Autocommit connection from ``IndexerDB.connect()``.
    source:
        Any ``EventSource``.
    config:
        Poll interval, page size and fetch-retry settings.
    sleep:
        Awaitable used for retry backoff; tests replace it.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        source: EventSource,
        config: Optional[IndexerConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or IndexerConfig()
        self.conn = conn
        self.source = source
        self.projector = StateProjector(conn)
        self.checkpoints = CheckpointStore(conn)
        self.phase = PollerPhase.IDLE
        self.cycles = 0
        self._sleep = sleep
        self._stop = asyncio.Event()

    # ── lifecycle ─────────────────────────────────────────────────

    def request_stop(self) -> None:
        """Ask the loop to exit after the cycle in progress."""
        if not self._stop.is_set():
            logger.info("Stop requested; finishing current cycle")
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def run(self, install_signal_handlers: bool = True) -> None:
        """Poll until stopped, sleeping ``poll_interval`` between cycles."""
        if install_signal_handlers:
            self._install_signal_handlers()

        logger.info("Polling every %.1fs", self.config.poll_interval)
        try:
            while not self._stop.is_set():
                await self.run_once()
                if self._stop.is_set():
                    break
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.config.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.phase = PollerPhase.STOPPED
            logger.info("Poller stopped after %d cycles", self.cycles)

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform / not the main thread.
                logger.debug("Cannot install handler for %s", sig.name)

    # ── cycle ─────────────────────────────────────────────────────

    async def run_once(self) -> list[PollResult]:
        """Run one cycle over every tracked contract, sequentially."""
        results = []
        for contract_id in tracked_contract_ids(self.conn):
            checkpoint = self.checkpoints.load(contract_id)
            results.append(await self.poll_contract(checkpoint))
        self.cycles += 1
        return results

    async def poll_contract(self, checkpoint: Checkpoint) -> PollResult:
        """Fetch, apply and checkpoint one page for *checkpoint*'s contract.

        Returns the resulting checkpoint inside a ``PollResult``; on any
        failure the returned checkpoint is the one passed in.
        """
        contract_id = checkpoint.contract_id
        result = PollResult(contract_id=contract_id, checkpoint=checkpoint)

        self.phase = PollerPhase.FETCHING
        try:
            page = await self._fetch(checkpoint)
        except SourceError as e:
            logger.error(
                "Giving up on %s this cycle after %d attempts: %s",
                contract_id,
                self.config.fetch_attempts,
                e,
            )
            result.error = str(e)
            self.phase = PollerPhase.IDLE
            return result
        result.fetched = len(page.events)

        self.phase = PollerPhase.APPLYING
        try:
            self._apply_page(contract_id, page, result)
        except StorageWriteError as e:
            logger.error(
                "Aborted page for %s after %d of %d events; checkpoint stays at %s: %s",
                contract_id,
                result.applied,
                result.fetched,
                checkpoint.position,
                e,
            )
            result.error = str(e)
            self.phase = PollerPhase.IDLE
            return result

        self.phase = PollerPhase.CHECKPOINTING
        target = page_checkpoint(checkpoint, page, self.config.page_size)
        if target != checkpoint:
            try:
                result.checkpoint = self.checkpoints.save(target)
            except StorageWriteError as e:
                logger.error("Checkpoint write for %s failed, will retry: %s", contract_id, e)
                result.error = str(e)

        if result.fetched:
            logger.info(
                "%s: applied %d/%d events, checkpoint %s (cursor %s)",
                contract_id,
                result.applied,
                result.fetched,
                result.checkpoint.position,
                result.checkpoint.cursor or "-",
            )
        self.phase = PollerPhase.IDLE
        return result

    async def _fetch(self, checkpoint: Checkpoint) -> EventPage:
        retrying = fetch_retrying(
            attempts=self.config.fetch_attempts,
            base=self.config.backoff_base,
            multiplier=self.config.backoff_multiplier,
            maximum=self.config.backoff_max,
            sleep=self._sleep,
        )
        async for attempt in retrying:
            with attempt:
                return await self.source.fetch_events(
                    checkpoint.contract_id,
                    checkpoint.position,
                    self.config.page_size,
                    cursor=checkpoint.cursor,
                )
        raise AssertionError("unreachable: retrying always returns or raises")

    def _apply_page(self, contract_id: str, page: EventPage, result: PollResult) -> None:
        for raw in page.events:
            parsed = parse_event(contract_id, raw)
            if parsed is None:
                result.malformed += 1
            elif isinstance(parsed, UnrecognizedEvent):
                result.unrecognized += 1
            elif isinstance(parsed, RoleEvent):
                self.projector.apply(parsed)
                result.applied += 1
