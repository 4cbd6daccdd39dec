from contextlib import contextmanager
from threading import Lock, RLock
from typing import Dict, Iterator


class LockerLocks:
    """One mutex per locker id; different lockers never contend."""

    def __init__(self):
        self._registry_lock = RLock()
        self._locks: Dict[str, Lock] = {}

    def _lock_for(self, locker_id: str) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(locker_id)
            if lock is None:
                lock = Lock()
                self._locks[locker_id] = lock
            return lock

    @contextmanager
    def hold(self, locker_id: str) -> Iterator[None]:
        lock = self._lock_for(locker_id)
        with lock:
            yield
