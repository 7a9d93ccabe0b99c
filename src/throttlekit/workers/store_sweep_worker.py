from throttlekit.infrastructure.observability.logger import get_logger
from throttlekit.infrastructure.store.memory_store import MemoryStore
from throttlekit.workers.base_worker import BaseWorker

logger = get_logger(__name__)


class StoreSweepWorker(BaseWorker):
    """Periodically drops expired locks and streaks from the process-local store.

    Advisory only: reads already ignore expired entries, this just bounds memory.
    """

    def __init__(self, store: MemoryStore, interval: float = 300):
        super().__init__(worker_name="store_sweep", interval=interval)
        self.store = store
        self.last_removed = 0

    async def execute(self) -> None:
        self.last_removed = await self.store.purge_expired()
        if self.last_removed:
            logger.debug(
                "Swept expired entries",
                removed=self.last_removed,
                remaining=len(self.store),
            )
