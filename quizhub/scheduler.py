"""Планировщик фоновой уборки попыток.

Две периодические задачи:
  * expired_attempts: каждый час в :00, брошенные незавершённые попытки;
  * old_attempts:     раз в сутки в SWEEP_DAILY_HOUR, старые завершённые.

Живёт внутри lifespan приложения (start / stop), часы и sleep
подменяются в тестах. Сами проходы синхронные, поэтому выполняются
в отдельном потоке со своей сессией БД.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.orm import Session

from quizhub.cleanup import cleanup_expired_attempts, cleanup_old_completed_attempts
from quizhub.config import settings
from quizhub.database import SessionLocal

logger = logging.getLogger(__name__)


def next_hourly(now: datetime, minute: int = 0) -> datetime:
    """Ближайший момент hh:minute строго после now."""
    candidate = now.replace(minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(hours=1)
    return candidate


def next_daily(now: datetime, hour: int, minute: int = 0) -> datetime:
    """Ближайший момент hour:minute строго после now."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


@dataclass
class ScheduledJob:
    name: str
    run: Callable[[Session], Any]
    next_run: Callable[[datetime], datetime]
    last_run: Optional[datetime] = None
    last_result: Any = None
    last_error: Optional[str] = None
    runs: int = field(default=0)


class CleanupScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] = datetime.utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        daily_hour: Optional[int] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._sleep = sleep
        self._tasks: Dict[str, asyncio.Task] = {}

        hour = settings.SWEEP_DAILY_HOUR if daily_hour is None else daily_hour
        self.jobs: Dict[str, ScheduledJob] = {
            "expired_attempts": ScheduledJob(
                name="expired_attempts",
                run=lambda db: cleanup_expired_attempts(db),
                next_run=next_hourly,
            ),
            "old_attempts": ScheduledJob(
                name="old_attempts",
                run=lambda db: cleanup_old_completed_attempts(db, settings.RETENTION_DAYS),
                next_run=lambda now: next_daily(now, hour),
            ),
        }

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    def start(self) -> None:
        """Запускает задачи в текущем event loop."""
        if self.is_running:
            logger.info("cleanup scheduler is already running")
            return

        for name, job in self.jobs.items():
            self._tasks[name] = asyncio.create_task(self._loop(job), name=f"cleanup:{name}")
        logger.info("quiz cleanup scheduler started: %s", ", ".join(self.jobs))

    async def stop(self) -> None:
        if not self._tasks:
            return
        for task in self._tasks.values():
            task.cancel()
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        logger.info("quiz cleanup scheduler stopped")

    async def _loop(self, job: ScheduledJob) -> None:
        while True:
            now = self._clock()
            delay = (job.next_run(now) - now).total_seconds()
            await self._sleep(max(delay, 0))
            await self.run_job(job)

    def _run_sync(self, job: ScheduledJob) -> Any:
        db = self._session_factory()
        try:
            return job.run(db)
        finally:
            db.close()

    async def run_job(self, job: ScheduledJob) -> Any:
        """Один прогон по расписанию: ошибка логируется, расписание продолжается."""
        job.last_run = self._clock()
        job.runs += 1
        try:
            result = await asyncio.to_thread(self._run_sync, job)
        except Exception as exc:
            job.last_error = str(exc)
            logger.exception("scheduled task %s failed", job.name)
            return None

        job.last_result = result
        job.last_error = None
        return result

    def status(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "is_running": self.is_running,
            "current_time": now,
            "tasks": [
                {
                    "name": job.name,
                    "next_run": job.next_run(now),
                    "last_run": job.last_run,
                    "last_result": job.last_result,
                    "last_error": job.last_error,
                    "runs": job.runs,
                }
                for job in self.jobs.values()
            ],
        }


scheduler = CleanupScheduler()
