import asyncio
import time
from abc import ABC, abstractmethod
from typing import Optional

from throttlekit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class BaseWorker(ABC):
    """Base class for supervised periodic background tasks.

    The owner (the container) calls start() at init and stop() at shutdown;
    the worker never outlives it.
    """

    def __init__(self, worker_name: str, interval: float = 60):
        self.worker_name = worker_name
        self.interval = interval
        self.is_running = False
        self.shutdown_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self.shutdown_event.clear()
        self._task = asyncio.get_running_loop().create_task(self.run(), name=self.worker_name)

    async def stop(self) -> None:
        """Signal shutdown and wait for the loop to exit."""
        self.is_running = False
        self.shutdown_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Worker shut down", worker=self.worker_name)

    async def run(self):
        """Main worker loop."""
        self.is_running = True
        logger.info("Worker started", worker=self.worker_name, interval=self.interval)

        while self.is_running and not self.shutdown_event.is_set():
            try:
                # Wait for next interval, but wake immediately on shutdown
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            start_time = time.monotonic()
            try:
                await self.execute()
            except Exception:
                logger.error("Worker iteration failed", worker=self.worker_name, exc_info=True)
                continue
            logger.debug(
                "Worker iteration completed",
                worker=self.worker_name,
                duration=time.monotonic() - start_time,
            )

        self.is_running = False
        logger.info("Worker stopped", worker=self.worker_name)

    @abstractmethod
    async def execute(self) -> None:
        """Execute one iteration of the worker's task."""
