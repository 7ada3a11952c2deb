import threading
from contextlib import contextmanager
from typing import Dict, Hashable


class KeyedLocks:
    """
    One mutex per key, e.g. ("quiz", student_id, quiz_id).

    Serializes read-then-write passes for the same student and item inside one
    process; the unique constraints on the progress tables cover the rest.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


progress_locks = KeyedLocks()
