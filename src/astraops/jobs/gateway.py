"""
Log stream gateway - one per streaming connection.

Manifesto:
    A viewer attaching at any moment sees the job's whole structured
    history followed by everything live, in order, without duplicates,
    and its connection ends on its own once the workflow it watches is
    over.  Nothing a viewer does (disconnecting, stalling, crashing) can
    reach the job.

Architecture:
    ::

        open()   subscribe log + raw  →  snapshot history  (same tick)
        events() replay snapshot
                 ├─ terminal entry replayed?       → stop
                 ├─ workflow over, none replayed?  → flush queued events, stop
                 └─ follow queue
                      log  (seq > last replayed) → yield, stop if terminal
                      raw                         → yield
                      idle heartbeat_seconds      → yield heartbeat
        close()  unsubscribe both tokens, once

    Bus callbacks run in the publisher's context and only enqueue with
    ``loop.call_soon_threadsafe``; the connection's own task does all the
    writing.

Tags:
    astraops, sse, streaming, fan-out, gateway

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from astraops.core.events import Subscription
from astraops.core.logging import get_logger
from astraops.core.timestamps import to_iso8601, utc_now
from astraops.jobs.models import LogEntry, WorkflowKind, is_terminal_entry
from astraops.jobs.store import JobStore

log = get_logger(__name__)

LOG_EVENT = "log"
RAW_EVENT = "raw"
_CLOSE = object()
_IDLE = object()

DEFAULT_QUEUE_SIZE = 10_000


@dataclass(frozen=True)
class StreamEvent:
    """One server-sent event."""

    event: str
    data: str

    def encode(self) -> str:
        """Wire form: ``event:`` line, one ``data:`` line per text line, blank line."""
        body = "".join(f"data: {line}\n" for line in self.data.split("\n"))
        return f"event: {self.event}\n{body}\n"


def heartbeat_event() -> StreamEvent:
    return StreamEvent(RAW_EVENT, f"[{to_iso8601(utc_now())}] [heartbeat]")


class LogStreamGateway:
    """Replay-then-follow view of one job's output.

    Parameters
    ----------
    store
        Job store holding the job and its bus.
    job_id
        Job being watched.
    kind
        Which workflow's terminal signal closes the stream.
    heartbeat_seconds
        Idle time after which a heartbeat raw line is sent.
    """

    def __init__(
        self,
        store: JobStore,
        job_id: str,
        kind: WorkflowKind,
        *,
        heartbeat_seconds: float = 30.0,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.store = store
        self.job_id = job_id
        self.kind = kind
        self.heartbeat_seconds = heartbeat_seconds
        self.closed = asyncio.Event()
        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._subscriptions: list[Subscription] = []
        self._replay: list[LogEntry] = []
        self._last_seq = -1
        self._opened = False
        self._closing = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Subscribe to both channels, then snapshot the history."""
        if self._opened:
            return
        self._opened = True
        self._loop = asyncio.get_running_loop()
        bus = self.store.bus
        self._subscriptions = [
            bus.subscribe_log(self.job_id, lambda entry: self._offer(LOG_EVENT, entry)),
            bus.subscribe_raw(self.job_id, lambda line: self._offer(RAW_EVENT, line)),
        ]
        self._replay = self.store.snapshot_logs(self.job_id)
        log.debug("stream.opened", job_id=self.job_id, kind=self.kind.value, replay=len(self._replay))

    def close(self) -> None:
        """Release the subscriptions.  Safe to call any number of times."""
        if self._closing:
            return
        self._closing = True
        for subscription in self._subscriptions:
            self.store.bus.unsubscribe(subscription)
        self._subscriptions = []
        # Wake a consumer blocked on the queue.
        self._offer(_CLOSE, None)
        self.closed.set()
        log.debug("stream.closed", job_id=self.job_id, kind=self.kind.value)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _offer(self, event: Any, payload: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._enqueue, event, payload)

    def _enqueue(self, event: Any, payload: Any) -> None:
        try:
            self._queue.put_nowait((event, payload))
        except asyncio.QueueFull:
            log.warning("stream.queue_full", job_id=self.job_id, dropped=event if isinstance(event, str) else "close")

    def _workflow_over(self) -> bool:
        job = self.store.get_job(self.job_id)
        if job is None:
            return True
        if self.kind is WorkflowKind.MONITORING:
            return job.monitoring is not None and job.monitoring.is_terminal
        return job.status.is_terminal

    async def _next(self, draining: bool) -> tuple[Any, Any] | None:
        """Next queued event, ``_IDLE`` after a quiet heartbeat interval, or
        None once a draining queue is empty."""
        if draining:
            try:
                return self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return None
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=self.heartbeat_seconds)
        except asyncio.TimeoutError:
            return (_IDLE, None)

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield the replay and then live events until the stream should end."""
        self.open()
        try:
            for entry in self._replay:
                if entry.seq is not None:
                    self._last_seq = max(self._last_seq, entry.seq)
                yield StreamEvent(LOG_EVENT, entry.model_dump_json())
            if any(is_terminal_entry(self.kind, entry) for entry in self._replay):
                return

            # Finished while replaying: whatever it published since open()
            # is already queued or about to be, so flush that and stop.
            draining = self._workflow_over()
            if draining:
                await asyncio.sleep(0)

            while not self._closing:
                item = await self._next(draining)
                if item is None:
                    return
                event, payload = item
                if event is _CLOSE:
                    return
                if event is _IDLE:
                    yield heartbeat_event()
                    continue
                if event == RAW_EVENT:
                    yield StreamEvent(RAW_EVENT, payload)
                    continue

                entry: LogEntry = payload
                if entry.seq is not None:
                    if entry.seq <= self._last_seq:
                        continue
                    self._last_seq = entry.seq
                yield StreamEvent(LOG_EVENT, entry.model_dump_json())
                if is_terminal_entry(self.kind, entry):
                    return
        finally:
            self.close()
