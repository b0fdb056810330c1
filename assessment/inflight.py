# assessment/inflight.py

import threading
from contextlib import contextmanager
from typing import Iterator, List, Set

from assessment.errors import SubmissionInProgress


class SubmissionGuard:
    """
    Process-local registry of sessions with an assessment submission in flight.

    - acquire() is an atomic check-and-set
    - hold() releases in `finally`, on success and on failure alike
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: Set[str] = set()

    def acquire(self, key: str) -> bool:
        key = str(key)
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(str(key))

    def snapshot(self) -> List[str]:
        """
        Return a copy of all keys currently in flight.
        """
        with self._lock:
            return list(self._keys)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        if not self.acquire(key):
            raise SubmissionInProgress(f"Submission already in flight for session {key}")
        try:
            yield
        finally:
            self.release(key)
