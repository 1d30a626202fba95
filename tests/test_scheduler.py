import asyncio
from datetime import datetime, timedelta

import pytest

from quizhub.models import QuizAttempt
from quizhub.scheduler import CleanupScheduler, ScheduledJob, next_daily, next_hourly

HALF_PAST_TEN = datetime(2026, 3, 1, 10, 30, 0)


def _boom(db):
    raise RuntimeError("boom")


def _scheduler(session_factory, now=HALF_PAST_TEN, sleep=asyncio.sleep):
    return CleanupScheduler(session_factory=session_factory, clock=lambda: now, sleep=sleep, daily_hour=2)


@pytest.mark.parametrize(
    "now,expected",
    [
        (datetime(2026, 3, 1, 10, 30), datetime(2026, 3, 1, 11, 0)),
        (datetime(2026, 3, 1, 10, 0), datetime(2026, 3, 1, 11, 0)),
        (datetime(2026, 3, 1, 23, 59, 59), datetime(2026, 3, 2, 0, 0)),
    ],
)
def test_next_hourly(now, expected):
    assert next_hourly(now) == expected


@pytest.mark.parametrize(
    "now,expected",
    [
        (datetime(2026, 3, 1, 1, 0), datetime(2026, 3, 1, 2, 0)),
        (datetime(2026, 3, 1, 2, 0), datetime(2026, 3, 2, 2, 0)),
        (datetime(2026, 3, 1, 10, 30), datetime(2026, 3, 2, 2, 0)),
    ],
)
def test_next_daily(now, expected):
    assert next_daily(now, 2) == expected


def test_failed_run_is_recorded_and_swallowed(session_factory):
    sched = _scheduler(session_factory)
    job = ScheduledJob(name="broken", run=_boom, next_run=next_hourly)

    assert asyncio.run(sched.run_job(job)) is None
    assert job.last_error == "boom"
    assert job.runs == 1
    assert job.last_run == HALF_PAST_TEN


def test_loop_survives_failures(session_factory):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)
        if len(delays) == 3:
            raise asyncio.CancelledError()

    sched = _scheduler(session_factory, sleep=fake_sleep)
    job = ScheduledJob(name="broken", run=_boom, next_run=next_hourly)

    async def drive():
        with pytest.raises(asyncio.CancelledError):
            await sched._loop(job)

    asyncio.run(drive())

    assert delays == [1800, 1800, 1800]
    assert job.runs == 2


def test_start_and_stop(session_factory):
    sched = _scheduler(session_factory)

    async def lifecycle():
        sched.start()
        assert sched.is_running
        # повторный start не плодит задачи
        sched.start()
        assert len(sched._tasks) == 2
        await sched.stop()

    asyncio.run(lifecycle())

    assert not sched.is_running


def test_status_lists_both_jobs(session_factory):
    status = _scheduler(session_factory).status()

    assert status["is_running"] is False
    next_runs = {t["name"]: t["next_run"] for t in status["tasks"]}
    assert next_runs == {
        "expired_attempts": datetime(2026, 3, 1, 11, 0),
        "old_attempts": datetime(2026, 3, 2, 2, 0),
    }


def test_expired_job_removes_abandoned_attempt(db, session_factory, factory):
    quiz = factory.quiz(time_limit=30)
    db.add(
        QuizAttempt(
            quiz_id=quiz.id,
            user_id=factory.user().id,
            start_time=datetime.utcnow() - timedelta(days=2),
        )
    )
    db.commit()

    sched = _scheduler(session_factory)
    job = sched.jobs["expired_attempts"]

    assert asyncio.run(sched.run_job(job)) == 1
    assert job.last_result == 1
    assert job.last_error is None
    assert db.query(QuizAttempt).count() == 0
