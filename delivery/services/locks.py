"""
Locks serialising delivery work.

``order_lock`` keeps two triggers in this process (payment confirmation,
manual retry, periodic sweep) from allocating the same order at once.
``sweep_lock`` keeps a periodic sweep from overlapping with itself across
workers, using the shared Django cache.
"""
import logging
import threading
import uuid
from contextlib import contextmanager

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)


class KeyedLock:
    """Table of per-key mutexes, entries dropped once nobody holds or waits."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}
        self._users = {}

    @contextmanager
    def hold(self, key):
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]

    def __contains__(self, key):
        with self._guard:
            return key in self._locks


_order_locks = KeyedLock()


def order_lock(order_id):
    return _order_locks.hold(str(order_id))


@contextmanager
def sweep_lock(name: str, timeout: int = None):
    """
    Non-blocking lock for one sweep. Yields True when acquired, False when
    another run of the same sweep still holds it.
    """
    timeout = timeout or settings.DELIVERY_SWEEP_LOCK_TIMEOUT
    key = f'delivery:sweep-lock:{name}'
    token = uuid.uuid4().hex

    acquired = cache.add(key, token, timeout)
    if not acquired:
        logger.info(f"Sweep {name} already running, skipping this run")
    try:
        yield acquired
    finally:
        if acquired and cache.get(key) == token:
            cache.delete(key)
