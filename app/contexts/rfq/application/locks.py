from __future__ import annotations

import contextlib
import threading
from typing import Dict, Iterator, Tuple


class RequestLockRegistry:
    """Process-wide mutual exclusion per (tenant, request)."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._holders: Dict[Tuple[str, str], int] = {}

    @contextlib.contextmanager
    def hold(self, tenant_id: str, request_id: str) -> Iterator[None]:
        key = (str(tenant_id), str(request_id))
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                remaining = self._holders.get(key, 1) - 1
                if remaining <= 0:
                    self._holders.pop(key, None)
                    self._locks.pop(key, None)
                else:
                    self._holders[key] = remaining
