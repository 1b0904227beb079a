"""Per-actor single-writer locks for ledger, supervision and custody state."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class ActorLocks:
    """
    One re-entrant lock per actor.

    Any component that mutates an actor's record, supervision or custody case
    does so inside ``hold(actor_id)``; aggregate reads take the same lock so
    they never observe a half-applied mutation. The lock is re-entrant because
    a custody release hands off to supervision for the same actor.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, actor_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(actor_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[actor_id] = lock
            return lock

    @contextmanager
    def hold(self, actor_id: str) -> Iterator[None]:
        with self.lock_for(actor_id):
            yield
