from __future__ import annotations

import asyncio

from fundee_backend.app.services.scheduler_service import SchedulerService, SchedulerSettings

FAST = SchedulerSettings(INTERVAL_SEC=1, TASK_TIMEOUT_SEC=1, BACKOFF_START_SEC=5, BACKOFF_MAX_SEC=20)


async def test_tick_runs_every_job_and_isolates_failures():
    ran = []

    async def good():
        ran.append("good")

    async def bad():
        raise RuntimeError("boom")

    scheduler = SchedulerService(FAST)
    scheduler.add_job("good", good)
    scheduler.add_job("bad", bad)

    await scheduler.run_single_tick()

    jobs = {j["name"]: j for j in scheduler.list_jobs()}
    assert ran == ["good"]
    assert jobs["good"]["failures"] == 0 and jobs["good"]["last_success_at"]
    assert jobs["bad"]["failures"] == 1 and jobs["bad"]["last_error"] == "boom"
    assert jobs["bad"]["backoff_sec"] == 10


async def test_failed_job_waits_for_backoff():
    calls = []

    async def flaky():
        calls.append(1)
        raise RuntimeError("down")

    scheduler = SchedulerService(FAST)
    scheduler.add_job("flaky", flaky)
    await scheduler.run_single_tick()
    await scheduler.run_single_tick()
    assert len(calls) == 1


async def test_timeout_counts_as_failure():
    async def hang():
        await asyncio.sleep(5)

    scheduler = SchedulerService(FAST)
    scheduler.add_job("hang", hang)
    await scheduler.run_single_tick()
    assert scheduler.list_jobs()[0]["last_error"] == "timeout"


async def test_start_and_stop():
    ticks = []

    async def job():
        ticks.append(1)

    scheduler = SchedulerService(FAST)
    scheduler.add_job("job", job)
    await scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.05)
    await scheduler.stop()
    assert not scheduler.running
    assert ticks


def test_default_jobs_registered_once():
    scheduler = SchedulerService(FAST)
    scheduler.register_defaults()
    scheduler.register_defaults()
    assert [j["name"] for j in scheduler.list_jobs()] == ["execute_due_draws", "ensure_active_draw"]


async def test_worker_loop_survives_failed_ticks(monkeypatch):
    from fundee_backend.app.scheduler import draws_runner

    ticks = []
    sleeps = []

    async def flaky_run_once(now=None):
        ticks.append(1)
        if len(ticks) == 1:
            raise RuntimeError("db down")

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr(draws_runner, "run_once", flaky_run_once)
    await draws_runner._run_forever(sleeper=fake_sleep, max_ticks=3)

    assert len(ticks) == 3
    assert len(sleeps) == 3 and all(28 <= s <= 32 for s in sleeps)
