"""Tests for ezkonnect.collector.signals.SignalChannels."""

from __future__ import annotations

import asyncio

import pytest

from ezkonnect.collector.signals import SignalCategory, SignalChannels, WatchSignal


def _signal(category: SignalCategory, name: str = "checkout") -> WatchSignal:
    return WatchSignal(category=category, resource_name=name)


class TestSignalChannels:
    async def test_queued_signals_returned_without_waiting(self) -> None:
        channels = SignalChannels()
        channels.publish(_signal(SignalCategory.SPEC))
        channels.publish(_signal(SignalCategory.STATUS))

        got = await asyncio.wait_for(
            channels.next_signals([SignalCategory.SPEC, SignalCategory.STATUS]), timeout=1.0
        )

        assert sorted(s.category.value for s in got) == ["spec", "status"]
        assert channels.pending([SignalCategory.SPEC, SignalCategory.STATUS]) == 0

    async def test_unselected_category_is_not_consumed(self) -> None:
        channels = SignalChannels()
        channels.publish(_signal(SignalCategory.WORKLOAD))

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(channels.next_signals([SignalCategory.SPEC]), timeout=0.05)

        assert channels.pending([SignalCategory.WORKLOAD]) == 1

    async def test_waits_for_signal_published_later(self) -> None:
        channels = SignalChannels()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, channels.publish, _signal(SignalCategory.STATUS))

        got = await asyncio.wait_for(
            channels.next_signals([SignalCategory.SPEC, SignalCategory.STATUS]), timeout=1.0
        )

        assert got == [_signal(SignalCategory.STATUS)]

    async def test_cancelled_wait_leaves_later_signals_queued(self) -> None:
        channels = SignalChannels()

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(channels.next_signals([SignalCategory.SPEC]), timeout=0.02)

        channels.publish(_signal(SignalCategory.SPEC))
        assert channels.pending([SignalCategory.SPEC]) == 1
        got = await asyncio.wait_for(channels.next_signals([SignalCategory.SPEC]), timeout=1.0)
        assert len(got) == 1

    async def test_publish_never_blocks_without_reader(self) -> None:
        channels = SignalChannels()
        for _ in range(100):
            channels.publish(_signal(SignalCategory.SPEC))
        assert channels.pending([SignalCategory.SPEC]) == 100

    async def test_duplicate_categories_are_deduplicated(self) -> None:
        channels = SignalChannels()
        channels.publish(_signal(SignalCategory.SPEC))

        got = await channels.next_signals([SignalCategory.SPEC, SignalCategory.SPEC])

        assert len(got) == 1
