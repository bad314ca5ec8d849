import threading
from contextlib import contextmanager
from typing import Dict


class RoomLocks:
    """One lock per room id.

    Operations on the same room are serialized; different rooms never wait
    on each other. Locks are created on first use and dropped when a room is
    purged.
    """

    def __init__(self) -> None:
        self._locks: Dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, room_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(room_id)
            if lock is None:
                lock = self._locks[room_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, room_id: int):
        lock = self.lock_for(room_id)
        with lock:
            yield

    def discard(self, room_id: int) -> None:
        with self._guard:
            self._locks.pop(room_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


room_locks = RoomLocks()
