"""
Knowledge Worker Scheduler
==========================

In-process APScheduler trigger for the knowledge worker.

Serverless deployments leave this off (worker_interval_seconds = 0) and
call the worker endpoint from an external cron instead.
"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from supportflow.knowledge.application.services import KnowledgeWorker, WorkerRun
from supportflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class WorkerScheduler:
    """
    Runs one bounded worker batch per interval.

    max_instances=1 keeps ticks of this process from overlapping; the job
    queue's compare-and-set claim covers other processes and the cron
    endpoint. A failing tick is reported by APScheduler and the next tick
    runs as usual.
    """

    def __init__(self, worker: KnowledgeWorker, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._worker = worker
        self._scheduler: Optional[AsyncIOScheduler] = None
        self.ticks = 0
        self.last_run: Optional[WorkerRun] = None

    async def tick(self) -> WorkerRun:
        run = await self._worker.run_once()
        self.ticks += 1
        self.last_run = run
        return run

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Worker scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_seconds,
            id="knowledge_worker",
            name="Knowledge ingest worker",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            # Missed ticks collapse into one; the queue is drained by the next run anyway
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        logger.info("Worker scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self.is_running:
            return
        # Do not wait for an in-flight batch; its job stays claimed and is reclaimed once stale
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Worker scheduler stopped", extra={"ticks": self.ticks})

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
