from typing import Any, Dict, List, Mapping, NamedTuple, Optional
import asyncio
from concurrent.futures import ThreadPoolExecutor
import logging

from app.services.notification_automation import NotificationAutomation

logger = logging.getLogger(__name__)


class NotificationEvent(NamedTuple):
    event_type: str
    event_data: Dict[str, Any]
    options: Dict[str, Any]


class NotificationDispatcher:
    """Bounded in-process queue between HTTP responses and the automation engine.

    ``publish`` never blocks the caller. Events that do not fit in the queue,
    or arrive while the dispatcher is stopped, are dropped and logged.
    """

    def __init__(self, automation: NotificationAutomation, *, max_queue_size: int = 1000, workers: int = 4):
        self.automation = automation
        self.max_queue_size = max_queue_size
        self.workers = workers
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self):
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="notification")
        self._tasks = [asyncio.create_task(self._worker(i)) for i in range(self.workers)]
        logger.info(f"Notification dispatcher started with {self.workers} worker(s)")

    def publish(
        self,
        event_type: str,
        event_data: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        event = NotificationEvent(event_type, dict(event_data or {}), dict(options or {}))
        if not self.running:
            logger.warning(f"Dropped notification event {event_type}: dispatcher not running", extra={"event": event._asdict()})
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Dropped notification event {event_type}: queue full ({self.max_queue_size})", extra={"event": event._asdict()})
            return False
        return True

    async def _worker(self, index: int):
        loop = asyncio.get_running_loop()
        while True:
            event = await self._queue.get()
            try:
                result = await loop.run_in_executor(
                    self._executor,
                    self.automation.trigger_notification,
                    event.event_type,
                    event.event_data,
                    event.options,
                )
                if not result.success:
                    logger.error(f"Notification event {event.event_type} failed: {result.error}")
            except Exception as e:
                logger.error(f"Error in notification worker {index} for {event.event_type}: {e}")
            finally:
                self._queue.task_done()

    async def join(self):
        """Wait until every queued event has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = 5.0):
        if not self.running:
            return
        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Notification dispatcher stopped with {self._queue.qsize()} event(s) still queued")
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._executor.shutdown(wait=False)
        self._executor = None
        logger.info("Notification dispatcher stopped")
