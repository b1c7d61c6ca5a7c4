import asyncio
from typing import Any, Dict, List, Optional, Set

from shared.logging.logger import get_logger

log = get_logger("core.scheduler")


class Scheduler:
    """
    Owns every long-lived task of the runtime: platform workers and
    housekeeping sweeps. Shutdown asks workers to stop, cancels the rest and
    waits for all of them with `return_exceptions=True`.
    """

    SPAM_CLEANUP_INTERVAL = 30.0

    def __init__(self, *, spam_cleanup_interval: Optional[float] = None):
        self._tasks: Dict[str, asyncio.Task] = {}
        self._workers: Dict[str, Any] = {}

        # Track which platforms were started
        self._platforms_started: Set[str] = set()

        self.spam_cleanup_interval = (
            spam_cleanup_interval if spam_cleanup_interval is not None else self.SPAM_CLEANUP_INTERVAL
        )

    # ------------------------------------------------------------

    def add_task(self, name: str, task: Optional[asyncio.Task]) -> Optional[asyncio.Task]:
        if task is None:
            return None
        if name in self._tasks and not self._tasks[name].done():
            log.warning(f"[scheduler] task '{name}' already running; skipping")
            task.cancel()
            return self._tasks[name]
        self._tasks[name] = task
        return task

    def start_worker(self, platform: str, worker: Any) -> asyncio.Task:
        """Run `worker.run()` as the adapter task for `platform`."""
        if platform in self._workers:
            log.warning(f"[scheduler] {platform} worker already started; skipping")
            return self._tasks[f"{platform}:worker"]

        log.info(f"[BOOT] {platform} ENABLED; starting worker")
        self._workers[platform] = worker
        self._platforms_started.add(platform)
        task = asyncio.create_task(worker.run(), name=f"{platform}-worker")
        self._tasks[f"{platform}:worker"] = task
        return task

    def start_housekeeping(self, *, manager=None, spam_detector=None) -> None:
        if manager is not None:
            self.add_task("suppression:cleanup", manager.start_cleanup_task())
        if spam_detector is not None:
            self.add_task(
                "spam:cleanup",
                asyncio.create_task(self._spam_cleanup(spam_detector), name="spam-cleanup"),
            )

    async def _spam_cleanup(self, spam_detector) -> None:
        try:
            while True:
                await asyncio.sleep(self.spam_cleanup_interval)
                try:
                    spam_detector.cleanup()
                except Exception as e:
                    log.warning(f"[spam] cleanup failed: {e}")
        except asyncio.CancelledError:
            log.debug("[spam] cleanup sweep cancelled")
            raise

    @property
    def platforms_started(self) -> List[str]:
        return sorted(self._platforms_started)

    def task_names(self) -> List[str]:
        return sorted(name for name, task in self._tasks.items() if not task.done())

    # ------------------------------------------------------------

    async def shutdown(self) -> None:
        log.info("Scheduler shutdown initiated")
        log.info(f"Platforms started during session: {self.platforms_started}")

        if self._workers:
            results = await asyncio.gather(
                *(worker.shutdown() for worker in self._workers.values()),
                return_exceptions=True,
            )
            for platform, result in zip(self._workers, results):
                if isinstance(result, Exception):
                    log.warning(f"[scheduler] {platform} worker shutdown failed: {result}")

        all_tasks: List[asyncio.Task] = list(self._tasks.values())
        for task in all_tasks:
            if not task.done():
                task.cancel()

        if all_tasks:
            await asyncio.gather(*all_tasks, return_exceptions=True)

        self._tasks.clear()
        self._workers.clear()
        self._platforms_started.clear()
        log.info("Scheduler shutdown complete")


__all__ = ["Scheduler"]
