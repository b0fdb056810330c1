# assessment/request_gate.py

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict


@dataclass
class GateDecision:
    allowed: bool
    retry_after_seconds: int = 0
    remaining: int = 0


class RequestGate:
    """
    Per-client sliding-window admission control.

    State is process-local: one instance is built per process at app creation and
    injected where needed. Several server instances each enforce their own quota,
    so the limit is best-effort abuse mitigation, not a global guarantee.

    Client keys are caller-supplied, so every `sweep_every` admission checks the
    gate also drops keys whose admissions have all left the window.
    """

    def __init__(
        self,
        *,
        max_requests: int = 5,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = 256,
    ):
        self.max_requests = max(1, int(max_requests))
        self.window_seconds = max(1.0, float(window_seconds))
        self.sweep_every = max(1, int(sweep_every))
        self._clock = clock
        self._lock = threading.Lock()
        # client key -> admission timestamps, oldest first
        self._admissions: Dict[str, Deque[float]] = {}
        self._checks_since_sweep = 0

    def _prune_unlocked(self, key: str, now: float) -> Deque[float]:
        queue = self._admissions.get(key)
        if queue is None:
            queue = deque()
            self._admissions[key] = queue
        while queue and now - queue[0] >= self.window_seconds:
            queue.popleft()
        return queue

    def _sweep_unlocked(self, now: float) -> int:
        removed = 0
        for key in list(self._admissions.keys()):
            if not self._prune_unlocked(key, now):
                del self._admissions[key]
                removed += 1
        self._checks_since_sweep = 0
        return removed

    def admit(self, client_key: str) -> GateDecision:
        """
        Check-then-append runs under one lock, so concurrent callers can never
        push a key past its quota.
        """
        key = str(client_key or "unknown")
        with self._lock:
            now = self._clock()
            self._checks_since_sweep += 1
            if self._checks_since_sweep >= self.sweep_every:
                self._sweep_unlocked(now)

            queue = self._prune_unlocked(key, now)
            if len(queue) >= self.max_requests:
                retry_after = math.ceil(self.window_seconds - (now - queue[0]))
                return GateDecision(allowed=False, retry_after_seconds=max(1, retry_after), remaining=0)
            queue.append(now)
            return GateDecision(allowed=True, remaining=self.max_requests - len(queue))

    def sweep_idle(self) -> int:
        """
        Drop keys whose every admission has left the window. Returns how many keys were removed.
        """
        with self._lock:
            return self._sweep_unlocked(self._clock())

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._admissions)
