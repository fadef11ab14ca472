import asyncio
import time
from collections import defaultdict
from typing import Dict, Optional, Set, Tuple


class RateLimitingQueue:
    """Work queue of resource keys with per-key exponential backoff.

    - A key waiting in the queue is never queued twice (dirty set).
    - A key handed to a worker is not handed to another worker until `done`
      is called for it (processing set). Adding it meanwhile queues it again
      once the current worker is done.
    - `add_rate_limited` delays a key by `min(base * 2**failures, max)`
      seconds, `forget` resets its failure count.
    """

    def __init__(self, base_delay: float = 5.0, max_delay: float = 300.0, clock=time.monotonic):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._clock = clock
        self._queue: asyncio.Queue = asyncio.Queue()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._added_at: Dict[str, float] = {}
        self._failures: Dict[str, int] = defaultdict(int)
        self._waiting: Dict[str, Tuple[float, asyncio.TimerHandle]] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._dirty - self._processing)

    def __contains__(self, key: str) -> bool:
        return key in self._dirty

    def processing(self, key: str) -> bool:
        return key in self._processing

    def add(self, key: str) -> bool:
        """Queue a key; returns False if it was already waiting."""
        if self._shutting_down or key in self._dirty:
            return False
        self._dirty.add(key)
        self._added_at[key] = self._clock()
        if key not in self._processing:
            self._queue.put_nowait(key)
        return True

    def add_after(self, key: str, delay: float) -> None:
        """Queue a key after `delay` seconds.

        If the key is already scheduled to come back sooner, the earlier time wins.
        """
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay
        scheduled = self._waiting.get(key)
        if scheduled is not None:
            if scheduled[0] <= deadline:
                return
            scheduled[1].cancel()
        handle = loop.call_later(delay, self._ready, key)
        self._waiting[key] = (deadline, handle)

    def _ready(self, key: str) -> None:
        self._waiting.pop(key, None)
        self.add(key)

    def backoff(self, key: str) -> float:
        """Delay the next `add_rate_limited` call would use for the key."""
        return min(self.base_delay * (2 ** self._failures[key]), self.max_delay)

    def add_rate_limited(self, key: str) -> float:
        """Queue a key after its backoff delay, and count one more failure."""
        delay = self.backoff(key)
        self._failures[key] += 1
        self.add_after(key, delay)
        return delay

    def forget(self, key: str) -> None:
        """Reset the failure count of a key."""
        self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> Optional[Tuple[str, float]]:
        """Wait for the next key.

        Returns the key and the seconds it waited in the queue, or None once
        the queue is shut down.
        """
        key = await self._queue.get()
        if key is None:
            # Wake up the next worker as well.
            self._queue.put_nowait(None)
            return None
        self._dirty.discard(key)
        self._processing.add(key)
        waited = self._clock() - self._added_at.pop(key, self._clock())
        return key, waited

    def done(self, key: str) -> None:
        """Mark a key as processed, queueing it again if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.put_nowait(key)

    def shutdown(self) -> None:
        """Stop handing out keys and cancel delayed additions."""
        self._shutting_down = True
        for _, handle in self._waiting.values():
            handle.cancel()
        self._waiting.clear()
        self._queue.put_nowait(None)
