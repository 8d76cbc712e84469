# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Rate-limited work queue for reconciliation requests.

Guarantees:
- a key queued several times before a worker picks it up is processed once
- a key is never handed to two workers at the same time; if it is added
  while being processed, it is queued again once the worker calls done()
- add_after() delays an add using a threading.Timer
- add_rate_limited() delays an add by a per-key exponential backoff that
  resets on forget()
"""

import logging
import threading
from collections import deque
from typing import Deque, Dict, Hashable, Optional, Set

from constants import BACKOFF_BASE_DELAY, BACKOFF_MAX_DELAY

logger = logging.getLogger(__name__)


class RateLimitingQueue:

    def __init__(self,
                 base_delay: float = BACKOFF_BASE_DELAY,
                 max_delay: float = BACKOFF_MAX_DELAY):
        self.base_delay = base_delay
        self.max_delay = max_delay

        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._failures: Dict[Hashable, int] = {}
        self._timers: Set[threading.Timer] = set()
        self._cond = threading.Condition()
        self._shutting_down = False

    def add(self, key: Hashable) -> None:
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                # Re-queued by done()
                return
            self._queue.append(key)
            self._cond.notify()

    def add_after(self, key: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            timer = threading.Timer(delay, self._fire, args=(key, ))
            timer.daemon = True
            self._timers.add(timer)
        timer.start()

    def _fire(self, key: Hashable) -> None:
        with self._cond:
            self._timers = {t for t in self._timers if t.is_alive()}
        self.add(key)

    def when(self, key: Hashable) -> float:
        """Next backoff delay for key. Increments its failure count."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(self.base_delay * (2**failures), self.max_delay)

    def add_rate_limited(self, key: Hashable) -> None:
        self.add_after(key, self.when(key))

    def num_requeues(self, key: Hashable) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def forget(self, key: Hashable) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """Block until a key is available. Returns None on shutdown or timeout."""
        with self._cond:
            while not self._queue and not self._shutting_down:
                if not self._cond.wait(timeout=timeout):
                    return None
            if not self._queue:
                return None
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: Hashable) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            for timer in self._timers:
                timer.cancel()
            self._timers.clear()
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)
