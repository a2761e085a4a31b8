"""
Outbound task queue

Side effects of lifecycle operations (AI analysis, notifications) are
enqueued after the triggering transaction commits and executed by
in-process asyncio workers. A failing task is retried with exponential
backoff, then logged and dropped; it never reaches the request that
enqueued it.
"""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
import asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..utils.logging import get_logger
from .ai_advisor import AIAdvisor
from .notification_service import NotificationService

logger = get_logger(__name__)


@dataclass
class TaskContext:
    """Collaborators handed to every task; each task opens its own session"""
    session_factory: async_sessionmaker[AsyncSession]
    advisor: AIAdvisor
    notifier: NotificationService


TaskFn = Callable[..., Awaitable[Any]]


@dataclass
class OutboundTask:
    name: str
    fn: TaskFn
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0


class OutboundTaskQueue:
    """In-process queue with N workers and bounded retries"""

    def __init__(
        self,
        context: TaskContext,
        workers: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None
    ):
        self.context = context
        self.worker_count = workers or settings.task_queue_workers
        self.max_attempts = max_attempts or settings.task_max_attempts
        self.base_delay = settings.task_retry_base_delay if base_delay is None else base_delay
        self._queue: "asyncio.Queue[OutboundTask]" = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self.stats = {"succeeded": 0, "failed": 0, "retried": 0}

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self.running:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"outbound-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info(f"Started outbound task queue with {self.worker_count} workers")

    async def stop(self) -> None:
        """Finish pending work, then stop the workers"""
        await self.drain()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Stopped outbound task queue")

    def enqueue(self, name: str, fn: TaskFn, *args: Any, **kwargs: Any) -> None:
        """Schedule a task; never blocks the caller"""
        self._queue.put_nowait(OutboundTask(name=name, fn=fn, args=args, kwargs=kwargs))
        logger.debug(f"Enqueued task {name}")

    async def drain(self) -> None:
        """Run everything pending to completion.

        Without workers the pending tasks run inline in the caller.
        """
        if self.running:
            await self._queue.join()
            return

        while not self._queue.empty():
            task = self._queue.get_nowait()
            try:
                await self._execute(task)
            finally:
                self._queue.task_done()

    async def _worker(self, index: int) -> None:
        while True:
            task = await self._queue.get()
            try:
                await self._execute(task)
            finally:
                self._queue.task_done()

    async def _execute(self, task: OutboundTask) -> bool:
        while True:
            task.attempts += 1
            try:
                await task.fn(self.context, *task.args, **task.kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if task.attempts >= self.max_attempts:
                    self.stats["failed"] += 1
                    logger.error(f"Task {task.name} failed after {task.attempts} attempts: {e}", exc_info=True)
                    return False

                delay = self.base_delay * (2 ** (task.attempts - 1))
                self.stats["retried"] += 1
                logger.warning(f"Task {task.name} attempt {task.attempts} failed: {e}; retrying in {delay:.1f}s")
                if delay:
                    await asyncio.sleep(delay)
                continue

            self.stats["succeeded"] += 1
            return True
