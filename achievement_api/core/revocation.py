# achievement_api/core/revocation.py
"""
Process-scoped revocation set for access tokens.

Maps token id -> expiry (epoch seconds). Entries are dropped lazily once
their expiry passes; nothing is persisted, so a restart clears the set.
"""
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator


class ReadPreferringLock:
    """Many concurrent readers, one writer; waiting readers are not blocked by waiting writers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class RevocationSet:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: Dict[str, float] = {}
        self._lock = ReadPreferringLock()
        self._clock = clock

    def revoke(self, token_id: str, expires_at: float) -> None:
        now = self._clock()
        if expires_at <= now:
            # already unusable, nothing to remember
            return
        with self._lock.write():
            self._entries[token_id] = expires_at
            self._purge_locked(now)

    def is_revoked(self, token_id: str) -> bool:
        now = self._clock()
        with self._lock.read():
            expires_at = self._entries.get(token_id)
        if expires_at is None:
            return False
        if expires_at > now:
            return True
        with self._lock.write():
            if self._entries.get(token_id, now + 1) <= now:
                del self._entries[token_id]
        return False

    def purge(self) -> int:
        with self._lock.write():
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        expired = [tid for tid, exp in self._entries.items() if exp <= now]
        for tid in expired:
            del self._entries[tid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)


revocation_set = RevocationSet()
