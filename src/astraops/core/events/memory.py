"""
In-memory log fan-out bus.

Manifesto:
    A single process owns every job, so the bus is two dictionaries
    behind one lock.  Delivery is synchronous and happens outside the
    lock, so a subscriber may unsubscribe (or subscribe another callback)
    from inside its own callback.

Tags:
    astraops, events, in-memory, fan-out, thread-safe

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from typing import Any

from astraops.core.events import (
    Channel,
    LogCallback,
    RawCallback,
    Subscription,
)
from astraops.core.logging import get_logger

__all__ = ["InMemoryLogBus"]

log = get_logger("astraops.events")


class InMemoryLogBus:
    """Thread-safe per-job subscriber registry for the ``log`` and ``raw`` channels.

    Example::

        bus = InMemoryLogBus()
        token = bus.subscribe_raw("job-1a2b3c4d", print)
        bus.publish_raw("job-1a2b3c4d", "terraform: Initializing...")
        bus.unsubscribe(token)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._registries: dict[Channel, dict[str, dict[str, Callable[[Any], None]]]] = {
            Channel.LOG: {},
            Channel.RAW: {},
        }

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    def publish_log(self, job_id: str, entry: Any) -> None:
        self._publish(Channel.LOG, job_id, entry)

    def publish_raw(self, job_id: str, line: str) -> None:
        self._publish(Channel.RAW, job_id, line)

    def _publish(self, channel: Channel, job_id: str, payload: Any) -> None:
        with self._lock:
            subscribers = self._registries[channel].get(job_id)
            if not subscribers:
                return
            snapshot = list(subscribers.items())

        for sub_id, callback in snapshot:
            try:
                callback(payload)
            except Exception as e:
                log.warning(
                    "bus.callback_failed",
                    job_id=job_id,
                    channel=channel.value,
                    subscription_id=sub_id,
                    error=str(e),
                )

    # ------------------------------------------------------------------
    # Subscribe
    # ------------------------------------------------------------------

    def subscribe_log(self, job_id: str, callback: LogCallback) -> Subscription:
        return self._subscribe(Channel.LOG, job_id, callback)

    def subscribe_raw(self, job_id: str, callback: RawCallback) -> Subscription:
        return self._subscribe(Channel.RAW, job_id, callback)

    def _subscribe(
        self, channel: Channel, job_id: str, callback: Callable[[Any], None]
    ) -> Subscription:
        sub_id = f"sub_{uuid.uuid4().hex[:12]}"
        with self._lock:
            self._registries[channel].setdefault(job_id, {})[sub_id] = callback
        return Subscription(id=sub_id, job_id=job_id, channel=channel)

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove *subscription*.  Returns False if it was already gone."""
        with self._lock:
            registry = self._registries[subscription.channel]
            subscribers = registry.get(subscription.job_id)
            if subscribers is None or subscribers.pop(subscription.id, None) is None:
                return False
            if not subscribers:
                del registry[subscription.job_id]
            return True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def subscriber_count(self, job_id: str | None = None) -> int:
        """Number of live subscriptions, across both channels."""
        with self._lock:
            if job_id is not None:
                return sum(len(reg.get(job_id, {})) for reg in self._registries.values())
            return sum(
                len(subs) for reg in self._registries.values() for subs in reg.values()
            )

    def has_subscribers(self, job_id: str) -> bool:
        """True while any subscription for *job_id* is registered."""
        with self._lock:
            return any(job_id in reg for reg in self._registries.values())
