import asyncio

from proctor.core.timers import AsyncioScheduler


def test_call_later_and_cancel():
    async def scenario():
        sched = AsyncioScheduler()
        fired = []
        sched.call_later(0.01, lambda: fired.append("a"))
        handle = sched.call_later(0.01, lambda: fired.append("b"))
        handle.cancel()
        await asyncio.sleep(0.05)
        return fired

    assert asyncio.run(scenario()) == ["a"]


def test_call_every_stops_when_cancelled_from_inside():
    async def scenario():
        sched = AsyncioScheduler()
        ticks = []
        handle = None

        def tick():
            ticks.append(1)
            if len(ticks) == 3:
                handle.cancel()

        handle = sched.call_every(0.01, tick)
        await asyncio.sleep(0.1)
        return ticks

    assert asyncio.run(scenario()) == [1, 1, 1]
