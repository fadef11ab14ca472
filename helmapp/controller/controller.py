import asyncio
import logging
from typing import List, Optional

from helmapp.sensors import OperatorSensor
from helmapp.types.models import HelmAppResources
from helmapp.types.settings import Settings
from .queue import RateLimitingQueue
from .reconciler import Reconciler

logger = logging.getLogger(__name__)


class Controller:
    """Drains the work queue with a pool of asyncio workers.

    A key is reconciled by at most one worker at a time. Failed steps come
    back with exponential backoff, successful ones reset the backoff.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        settings: Settings = None,
        sensor: OperatorSensor = None,
        queue: Optional[RateLimitingQueue] = None,
    ):
        self.reconciler = reconciler
        self.settings = settings or Settings()
        self.sensor = sensor or OperatorSensor()
        self.queue = queue or RateLimitingQueue(
            base_delay=self.settings.backoff_base_seconds,
            max_delay=self.settings.backoff_max_seconds,
        )
        self._workers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not w.done() for w in self._workers)

    def enqueue(self, namespace: str, name: str) -> None:
        """Request reconciliation of a HelmApp."""
        if self.queue.add(HelmAppResources.key(namespace, name)):
            self.sensor.on_reconcile_queued(name, namespace, len(self.queue))

    def start(self) -> None:
        if self._workers:
            return
        count = max(1, int(self.settings.worker_count))
        self._workers = [
            asyncio.create_task(self.worker(i), name=f"helmapp-worker-{i}")
            for i in range(count)
        ]
        logger.info(f"Started {count} reconciliation workers")

    async def stop(self) -> None:
        """Stop taking new keys and wait for in-flight reconciliations."""
        self.queue.shutdown()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Reconciliation workers stopped")

    async def worker(self, index: int) -> None:
        while True:
            item = await self.queue.get()
            if item is None:
                return
            key, waited = item
            namespace, name = HelmAppResources.split_key(key)
            self.sensor.on_reconcile_dequeued(name, namespace, waited, len(self.queue))
            try:
                await self.process(key)
            finally:
                self.queue.done(key)

    async def process(self, key: str) -> None:
        """Reconcile one key and schedule what comes next for it."""
        namespace, name = HelmAppResources.split_key(key)
        try:
            result = await self.reconciler.reconcile(key)
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            logger.exception(f"Unexpected error while reconciling {key}: {ex}")
            self.requeue_with_backoff(key, namespace, name)
            return

        if result.error is not None and result.requeue:
            self.requeue_with_backoff(key, namespace, name)
            return
        self.queue.forget(key)
        if result.requeue:
            self.queue.add(key)

    def requeue_with_backoff(self, key: str, namespace: str, name: str) -> None:
        failures = self.queue.num_requeues(key) + 1
        delay = self.queue.add_rate_limited(key)
        logger.info(f"Retrying {key} in {delay:.1f}s (attempt {failures})")
        self.sensor.on_reconcile_requeued(name, namespace, delay, failures)
