"""
Unit tests for order and sweep locks.
"""
import threading
import time

from django.core.cache import cache

from delivery.services.locks import KeyedLock, sweep_lock


class TestKeyedLock:
    """Tests for the per-key mutex table."""

    def test_same_key_is_serialised(self):
        locks = KeyedLock()
        active = []
        overlaps = []

        def worker():
            with locks.hold('order-1'):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        entered = threading.Event()

        def other_order():
            with locks.hold('order-2'):
                entered.set()

        with locks.hold('order-1'):
            thread = threading.Thread(target=other_order)
            thread.start()
            assert entered.wait(timeout=2)
            thread.join()

    def test_entries_are_dropped_when_unused(self):
        locks = KeyedLock()

        with locks.hold('order-1'):
            assert 'order-1' in locks

        assert 'order-1' not in locks

    def test_entry_is_released_after_error(self):
        locks = KeyedLock()

        try:
            with locks.hold('order-1'):
                raise RuntimeError('allocation failed')
        except RuntimeError:
            pass

        assert 'order-1' not in locks


class TestSweepLock:
    """Tests for the cache-backed sweep lock."""

    def test_second_holder_is_refused(self):
        with sweep_lock('stock') as first:
            with sweep_lock('stock') as second:
                assert first is True
                assert second is False

    def test_lock_is_released(self):
        with sweep_lock('stock') as acquired:
            assert acquired is True

        assert cache.get('delivery:sweep-lock:stock') is None
        with sweep_lock('stock') as acquired:
            assert acquired is True

    def test_foreign_lock_is_not_released(self):
        with sweep_lock('stock') as acquired:
            assert acquired is True
            # Lock expired and another worker took it over
            cache.set('delivery:sweep-lock:stock', 'other-token')

        assert cache.get('delivery:sweep-lock:stock') == 'other-token'

    def test_different_sweeps_do_not_block(self):
        with sweep_lock('stock') as stock, sweep_lock('alerts') as alerts:
            assert stock is True
            assert alerts is True
