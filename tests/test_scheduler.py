"""Tests for the timer capability: virtual clock and asyncio-backed timers."""
import asyncio
import pytest

from prompt_queue.scheduler import AsyncioScheduler, VirtualScheduler


class TestVirtualScheduler:
    @pytest.mark.asyncio
    async def test_fires_in_due_order(self):
        scheduler = VirtualScheduler()
        fired = []

        async def mark(name):
            fired.append((name, scheduler.now_ms()))

        scheduler.arm(300, lambda: mark("late"))
        scheduler.arm(100, lambda: mark("early"))
        assert scheduler.next_due_in() == 100

        assert await scheduler.advance(250) == 1
        assert fired == [("early", 100)]
        assert scheduler.now_ms() == 250

        await scheduler.advance(50)
        assert fired == [("early", 100), ("late", 300)]
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cancel(self):
        scheduler = VirtualScheduler()
        fired = []

        async def mark():
            fired.append(True)

        handle = scheduler.arm(10, mark)
        scheduler.cancel(handle)
        scheduler.cancel(None)
        await scheduler.advance(100)
        assert fired == []

    @pytest.mark.asyncio
    async def test_rearm_inside_window(self):
        scheduler = VirtualScheduler()
        fired = []

        async def tick():
            fired.append(scheduler.now_ms())
            if len(fired) < 3:
                scheduler.arm(100, tick)

        scheduler.arm(100, tick)
        await scheduler.advance(1000)
        assert fired == [100, 200, 300]

    def test_skip_time_fires_nothing(self):
        scheduler = VirtualScheduler(start_ms=500)
        scheduler.arm(10, lambda: None)
        scheduler.skip_time(1000)
        assert scheduler.now_ms() == 1500
        assert scheduler.pending == 1
        assert scheduler.next_due_in() == -990


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_fires_callback(self):
        scheduler = AsyncioScheduler()
        done = asyncio.Event()

        async def callback():
            done.set()

        scheduler.arm(10, callback)
        await asyncio.wait_for(done.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_cancelled_timer_never_fires(self):
        scheduler = AsyncioScheduler()
        fired = []

        async def callback():
            fired.append(True)

        handle = scheduler.arm(20, callback)
        scheduler.cancel(handle)
        await asyncio.sleep(0.05)
        assert fired == []

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self):
        scheduler = AsyncioScheduler()
        ran = asyncio.Event()

        async def callback():
            ran.set()
            raise RuntimeError("boom")

        scheduler.arm(0, callback)
        await asyncio.wait_for(ran.wait(), timeout=1)
        await asyncio.sleep(0)
        await scheduler.shutdown()
        assert scheduler.now_ms() > 0
