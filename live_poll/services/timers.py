import asyncio
import logging
from typing import Awaitable, Callable, Dict

TimerCallback = Callable[[], Awaitable[None]]


def poll_timer_key(code: str) -> str:
    return f"poll:{code}"


def teardown_timer_key(code: str) -> str:
    return f"teardown:{code}"


class TimerService:
    """One-shot delayed callbacks keyed by name.

    Scheduling under an existing key replaces the previous timer. A timer
    removes itself from the table before its callback runs, so the callback
    may call ``cancel`` on its own key without cancelling itself.
    """

    def __init__(self):
        self.logger = logging.getLogger("engine")
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, key: str, delay: float, callback: TimerCallback) -> asyncio.Task:
        self.cancel(key)

        async def fire():
            await asyncio.sleep(max(0.0, delay))
            if self._tasks.get(key) is task:
                del self._tasks[key]
            try:
                await callback()
            except Exception:
                self.logger.exception("Timer callback failed key=%s", key)

        task = asyncio.create_task(fire(), name=key)
        self._tasks[key] = task
        self.logger.debug("Timer scheduled key=%s delay=%s", key, delay)
        return task

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        if task is asyncio.current_task():
            return False
        task.cancel()
        self.logger.debug("Timer cancelled key=%s", key)
        return True

    def pending(self, key: str) -> bool:
        return key in self._tasks

    async def shutdown(self):
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
