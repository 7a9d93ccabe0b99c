from throttlekit.workers.base_worker import BaseWorker
from throttlekit.workers.store_sweep_worker import StoreSweepWorker

__all__ = ["BaseWorker", "StoreSweepWorker"]
