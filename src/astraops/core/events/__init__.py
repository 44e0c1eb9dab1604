"""
Log fan-out bus - per-job publish/subscribe for live output.

Every structured log entry and every raw process line of a job is
published here; streaming connections subscribe per job and relay what
they receive.  Two independent channels exist:

- ``log``: structured entries (also persisted by the job store)
- ``raw``: unstructured process lines (published only)

Manifesto:
    The bus is the only coupling between the code that produces output
    (executors, the orchestrator) and the code that consumes it (stream
    connections).  Producers never know how many viewers exist, and a
    broken viewer can never stall or fail a deployment.

Architecture:
    ::

        Executor ── store.append_log ──► publish_log(job_id, entry) ─┐
        Runner   ── store.append_raw ──► publish_raw(job_id, line)  ─┤
                                                                     ▼
                                       {job_id: {sub_id: callback}}  (per channel)
                                                                     │
                                  ┌──────────────┬───────────────────┘
                                  ▼              ▼
                             gateway #1     gateway #2 ...

Tags:
    astraops, events, fan-out, pub-sub, streaming

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

__all__ = [
    "Channel",
    "LogBus",
    "LogCallback",
    "RawCallback",
    "Subscription",
]


class Channel(str, Enum):
    """Bus channel."""

    LOG = "log"
    RAW = "raw"


LogCallback = Callable[[Any], None]
RawCallback = Callable[[str], None]


@dataclass(frozen=True)
class Subscription:
    """Token returned by ``subscribe_*``; pass it back to ``unsubscribe``."""

    id: str
    job_id: str
    channel: Channel


@runtime_checkable
class LogBus(Protocol):
    """Per-job fan-out of structured entries and raw lines.

    Implementations must be safe to call from any thread, deliver to a
    snapshot of the subscribers taken at publish time, and isolate a
    failing callback from the others and from the publisher.
    """

    def publish_log(self, job_id: str, entry: Any) -> None:
        """Deliver a structured entry to every ``log`` subscriber of *job_id*."""
        ...

    def publish_raw(self, job_id: str, line: str) -> None:
        """Deliver a raw line to every ``raw`` subscriber of *job_id*."""
        ...

    def subscribe_log(self, job_id: str, callback: LogCallback) -> Subscription:
        ...

    def subscribe_raw(self, job_id: str, callback: RawCallback) -> Subscription:
        ...

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a subscription.  Idempotent."""
        ...

    def subscriber_count(self, job_id: str | None = None) -> int:
        ...
