import asyncio
import json

import pytest

from pomodoro import PomodoroTimer, TimerStateStore, WORK, BREAK


def make_timer(store, clock, work=25, brk=5, **kwargs):
    return PomodoroTimer(store, 1, work_minutes=work, break_minutes=brk, clock=clock, **kwargs)


def persist(store, clock, **record):
    state = {"timeLeft": 100, "isRunning": True, "sessionType": WORK,
             "sessionsCompleted": 0, "lastUpdate": clock(), **record}
    store.set("planit_pomodoro_state:1", json.dumps(state))


def test_fresh_timer_uses_defaults(store, clock):
    timer = make_timer(store, clock)
    assert timer.time_left == 25 * 60
    assert not timer.is_running
    assert timer.session_type == WORK
    assert timer.sessions_completed == 0


@pytest.mark.parametrize("minutes", [1, 15, 25, 60])
def test_reset_restores_full_duration(store, clock, minutes):
    timer = make_timer(store, clock, work=minutes)
    timer.start()
    for _ in range(30):
        timer.tick()
    timer.reset()
    assert timer.time_left == minutes * 60
    assert not timer.is_running


def test_reset_during_break_uses_break_duration(store, clock):
    timer = make_timer(store, clock)
    timer.start_session(BREAK)
    timer.tick()
    timer.reset()
    assert timer.time_left == 5 * 60


def test_tick_decrements_by_one_and_stops_at_zero(store, clock):
    timer = make_timer(store, clock, work=1)
    timer.start()
    previous = timer.time_left
    for _ in range(59):
        timer.tick()
        assert timer.time_left == previous - 1
        previous = timer.time_left
    assert timer.tick() is True
    assert timer.time_left == 0
    assert timer.tick() is False
    assert timer.time_left == 0


def test_tick_does_nothing_when_paused(store, clock):
    timer = make_timer(store, clock)
    timer.tick()
    assert timer.time_left == 25 * 60


def test_reaching_zero_completes_work_session(store, clock):
    timer = make_timer(store, clock, work=1)
    timer.start()
    for _ in range(60):
        timer.tick()
    assert timer.is_complete
    assert not timer.is_running
    assert timer.sessions_completed == 1


def test_start_is_noop_when_complete(store, clock):
    timer = make_timer(store, clock, work=1)
    timer.start()
    for _ in range(60):
        timer.tick()
    timer.start()
    assert not timer.is_running


def test_complete_session_counts_only_work(store, clock):
    timer = make_timer(store, clock)
    timer.complete_session()
    assert timer.sessions_completed == 1
    timer.start_session(BREAK)
    timer.complete_session()
    assert timer.sessions_completed == 1
    assert not timer.is_running


def test_start_session_switches_type(store, clock):
    timer = make_timer(store, clock)
    timer.start_session(BREAK)
    assert timer.session_type == BREAK
    assert timer.time_left == 5 * 60
    assert timer.is_running
    with pytest.raises(ValueError):
        timer.start_session("nap")


def test_set_work_duration_keeps_running_countdown(store, clock):
    timer = make_timer(store, clock)
    timer.start()
    timer.tick()
    timer.set_work_duration_minutes(45)
    assert timer.time_left == 25 * 60 - 1
    assert timer.work_minutes == 45


def test_set_work_duration_while_paused(store, clock):
    timer = make_timer(store, clock)
    timer.set_work_duration_minutes(45)
    assert timer.time_left == 45 * 60


def test_set_work_duration_during_break_keeps_time_left(store, clock):
    timer = make_timer(store, clock)
    timer.start_session(BREAK)
    timer.pause()
    timer.set_work_duration_minutes(45)
    assert timer.time_left == 5 * 60


def test_rehydrate_with_no_elapsed_time_is_identical(store, clock):
    timer = make_timer(store, clock)
    timer.start()
    timer.tick()
    timer.tick()
    again = make_timer(store, clock)
    assert again.state == timer.state


def test_rehydrate_subtracts_elapsed_seconds(store, clock):
    persist(store, clock)
    clock.advance(30)
    assert make_timer(store, clock).time_left == 70


def test_rehydrate_floors_at_zero(store, clock):
    persist(store, clock)
    clock.advance(200)
    timer = make_timer(store, clock)
    assert timer.time_left == 0
    assert timer.is_running


def test_rehydrate_paused_keeps_time_left(store, clock):
    persist(store, clock, isRunning=False)
    clock.advance(300)
    assert make_timer(store, clock).time_left == 100


@pytest.mark.parametrize("raw", ["{not json", "[]", json.dumps({"timeLeft": -3}),
                                 json.dumps({"timeLeft": 5, "isRunning": True,
                                             "sessionType": "nap", "sessionsCompleted": 0})])
def test_corrupt_state_falls_back_to_defaults(store, clock, raw):
    store.set("planit_pomodoro_state:1", raw)
    timer = make_timer(store, clock)
    assert timer.time_left == 25 * 60
    assert not timer.is_running


def test_clear_state_wipes_record(store, clock):
    timer = make_timer(store, clock)
    timer.start()
    timer.complete_session()
    timer.clear_state(30)
    assert store.get("planit_pomodoro_state:1") is None
    assert timer.time_left == 30 * 60
    assert timer.sessions_completed == 0


def test_every_mutation_is_persisted(store, clock):
    timer = make_timer(store, clock)
    timer.start()
    clock.advance(1)
    timer.tick()
    saved = json.loads(store.get("planit_pomodoro_state:1"))
    assert saved["timeLeft"] == 25 * 60 - 1
    assert saved["isRunning"] is True
    assert saved["lastUpdate"] == clock()


def test_state_store_clamps_to_duration(store, clock):
    persist(store, clock, timeLeft=60 * 60, isRunning=False)
    state = TimerStateStore(store, 1, clock).load(25, 5)
    assert state["timeLeft"] == 25 * 60


def test_format_and_progress(store, clock):
    timer = make_timer(store, clock, work=1)
    assert timer.format_time_left() == "01:00"
    timer.start()
    for _ in range(15):
        timer.tick()
    assert timer.format_time_left() == "00:45"
    assert timer.progress() == 0.25


def test_ticking_task_completes_and_fires_callback(store, clock):
    completed = []

    async def on_complete(timer, session_type):
        completed.append(session_type)

    async def run():
        timer = make_timer(store, clock, on_complete=on_complete, tick_interval=0.001)
        timer.state["timeLeft"] = 3
        timer.start()
        assert timer.is_ticking
        for _ in range(200):
            if completed:
                break
            await asyncio.sleep(0.005)
        return timer

    timer = asyncio.run(run())
    assert completed == [WORK]
    assert timer.time_left == 0
    assert timer.sessions_completed == 1
    assert not timer.is_ticking


def test_pause_cancels_ticking_task(store, clock):
    async def run():
        timer = make_timer(store, clock, tick_interval=10)
        timer.start()
        task = timer._task
        timer.pause()
        assert not timer.is_ticking
        await asyncio.sleep(0.01)
        return task

    assert asyncio.run(run()).cancelled()


def test_close_releases_ticking_task_but_keeps_state(store, clock):
    async def run():
        timer = make_timer(store, clock, tick_interval=10)
        timer.start()
        task = timer._task
        timer.close()
        await asyncio.sleep(0.01)
        return timer, task

    timer, task = asyncio.run(run())
    assert task.cancelled()
    assert timer.is_running
    assert json.loads(store.get("planit_pomodoro_state:1"))["isRunning"] is True


def test_resume_completes_session_that_ran_out_while_away(store, clock):
    persist(store, clock, timeLeft=10)
    clock.advance(60)
    completed = []

    async def run():
        timer = make_timer(store, clock, on_complete=lambda t, s: completed.append(s), tick_interval=0.001)
        timer.resume()
        await asyncio.sleep(0.02)
        return timer

    timer = asyncio.run(run())
    assert completed == [WORK]
    assert not timer.is_running
    assert timer.sessions_completed == 1
