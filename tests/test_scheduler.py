import asyncio

import pytest

from darkmode.services.scheduler import AsyncioScheduler, ManualScheduler, SchedulerStalledError


def test_advance_runs_due_callbacks_in_order(scheduler):
    calls = []
    scheduler.call_later(20, lambda: calls.append("b"))
    scheduler.call_soon(lambda: calls.append("a"))
    late = scheduler.call_later(50, lambda: calls.append("late"))
    assert scheduler.pending() == 3
    assert scheduler.advance(20) == 2
    assert calls == ["a", "b"]
    assert scheduler.now_ms() == 20
    scheduler.cancel(late)
    assert scheduler.pending() == 0
    assert scheduler.run_until_idle() == 0


def test_callbacks_scheduled_while_advancing_run_if_due(scheduler):
    calls = []

    def first():
        calls.append(scheduler.now_ms())
        scheduler.call_later(5, lambda: calls.append(scheduler.now_ms()))

    scheduler.call_later(10, first)
    scheduler.advance(15)
    assert calls == [10, 15]


def test_frame_and_idle_defaults(scheduler):
    calls = []
    scheduler.request_frame(lambda: calls.append("frame"))
    scheduler.request_idle(lambda: calls.append("idle"))
    scheduler.request_idle(lambda: calls.append("idle-fast"), 5)
    scheduler.run_until_idle()
    assert calls == ["idle-fast", "frame", "idle"]
    assert scheduler.now_ms() == 100


def test_drive_advances_virtual_time(scheduler):
    async def work():
        await scheduler.sleep(250)
        await scheduler.next_frame()
        return scheduler.now_ms()

    assert asyncio.run(scheduler.drive(work())) == 266


def test_drive_reports_stalls(scheduler):
    async def blocked():
        await asyncio.get_running_loop().create_future()

    with pytest.raises(SchedulerStalledError):
        asyncio.run(scheduler.drive(blocked()))


def test_asyncio_scheduler_uses_running_loop():
    async def scenario():
        sched = AsyncioScheduler()
        calls = []
        sched.call_later(1, lambda: calls.append("fired"))
        handle = sched.call_later(1, lambda: calls.append("cancelled"))
        sched.cancel(handle)
        sched.cancel(None)
        await sched.sleep(5)
        return calls

    assert asyncio.run(scenario()) == ["fired"]


def test_manual_scheduler_is_default_free_of_wall_clock():
    sched = ManualScheduler()
    sched.call_later(10_000, lambda: None)
    assert sched.run_until_idle() == 1
    assert sched.now_ms() == 10_000


def test_asyncio_scheduler_parks_callbacks_until_a_loop_runs():
    sched = AsyncioScheduler()
    calls = []

    async def first_session():
        sched.call_later(1, lambda: calls.append("first"))
        await sched.sleep(5)

    asyncio.run(first_session())
    parked = sched.call_soon(lambda: calls.append("parked"))
    dropped = sched.call_soon(lambda: calls.append("dropped"))
    sched.cancel(dropped)
    assert sched.parked() == 1
    assert sched.is_alive(parked)
    assert not sched.is_alive(dropped)

    asyncio.run(sched.sleep(5))
    assert calls == ["first", "parked"]
    assert sched.parked() == 0
    assert not sched.is_alive(parked)


def test_timer_left_on_a_closed_loop_is_not_alive():
    sched = AsyncioScheduler()
    handles = []

    async def arm():
        handles.append(sched.call_later(10_000, lambda: None))

    asyncio.run(arm())
    assert not sched.is_alive(handles[0])


def test_manual_handles_report_liveness(scheduler):
    done = scheduler.call_later(5, lambda: None)
    waiting = scheduler.call_later(50, lambda: None)
    scheduler.advance(10)
    assert not scheduler.is_alive(done)
    assert scheduler.is_alive(waiting)
    scheduler.cancel(waiting)
    assert not scheduler.is_alive(waiting)
