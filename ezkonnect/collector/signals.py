"""Change signals passed from request-scoped watchers to the coordinator.

A :class:`WatchSignal` carries no payload beyond "this region changed".
Watchers publish with :meth:`SignalChannels.publish`, which never blocks: if
the coordinator has already given up on the request, the signal simply sits
in a queue nobody reads and is dropped with it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from ezkonnect.observability.metrics import watch_signals_total


class SignalCategory(StrEnum):
    """Region of the watched objects a signal reports on."""

    SPEC = "spec"
    STATUS = "status"
    WORKLOAD = "workload"


@dataclass(frozen=True)
class WatchSignal:
    category: SignalCategory
    resource_name: str


class SignalChannels:
    """One queue per :class:`SignalCategory`, read by a single consumer."""

    def __init__(self) -> None:
        self._queues: dict[SignalCategory, asyncio.Queue[WatchSignal]] = {
            category: asyncio.Queue() for category in SignalCategory
        }

    def publish(self, signal: WatchSignal) -> None:
        """Deliver *signal* without waiting for a reader."""
        self._queues[signal.category].put_nowait(signal)
        watch_signals_total.labels(category=signal.category.value).inc()

    def pending(self, categories: Iterable[SignalCategory]) -> int:
        """Signals already queued on *categories* and not yet consumed."""
        return sum(self._queues[c].qsize() for c in categories)

    async def next_signals(self, categories: Iterable[SignalCategory]) -> list[WatchSignal]:
        """Wait until at least one of *categories* has a signal and return what arrived.

        Already-queued signals are returned without suspending.  Otherwise
        this blocks on all selected queues at once; several signals may be
        returned when they land in the same loop iteration.
        """
        selected = list(dict.fromkeys(categories))
        ready = self._drain(selected)
        if ready:
            return ready

        getters = [asyncio.ensure_future(self._queues[c].get()) for c in selected]
        try:
            await asyncio.wait(getters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            # A cancelled Queue.get() leaves its item in the queue.
            for getter in getters:
                getter.cancel()
            await asyncio.gather(*getters, return_exceptions=True)
        return [g.result() for g in getters if not g.cancelled()]

    def _drain(self, categories: list[SignalCategory]) -> list[WatchSignal]:
        drained: list[WatchSignal] = []
        for category in categories:
            queue = self._queues[category]
            while not queue.empty():
                drained.append(queue.get_nowait())
        return drained
