"""
In-process scheduler for the delivery sweeps.

Celery beat is the production scheduler (see CELERY_BEAT_SCHEDULE); this
component runs the same sweeps on a background thread for single-process
deployments and exposes each run's results directly.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from django.conf import settings
from django.db import close_old_connections
from django.utils import timezone

from delivery.services import sweeps

logger = logging.getLogger(__name__)

DEFAULT_SWEEPS: Tuple[Tuple[str, Callable[[], dict]], ...] = (
    ('pending_deliveries', sweeps.check_pending_deliveries),
    ('failed_deliveries', sweeps.retry_failed_deliveries),
    ('inventory_levels', sweeps.check_inventory_levels),
    ('delivery_alerts', sweeps.check_and_send_alerts),
)


@dataclass
class SchedulerRun:
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: Dict[str, dict] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class DeliveryScheduler:
    """Runs the delivery sweeps every ``interval_seconds`` until stopped."""

    def __init__(self, interval_seconds: Optional[float] = None, sweep_functions=None, history_size: int = 20):
        if interval_seconds is None:
            interval_seconds = settings.AUTO_DELIVERY_CHECK_INTERVAL_MINUTES * 60
        self.interval_seconds = interval_seconds
        self.sweep_functions = list(sweep_functions or DEFAULT_SWEEPS)
        self.history_size = history_size
        self.history: List[SchedulerRun] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> SchedulerRun:
        """Run every sweep once; one failing sweep does not stop the others."""
        with self._run_lock:
            run = SchedulerRun(started_at=timezone.now())
            for name, sweep in self.sweep_functions:
                try:
                    run.results[name] = sweep()
                except Exception as e:
                    logger.exception(f"Delivery sweep {name} failed")
                    run.errors[name] = str(e)
            run.finished_at = timezone.now()

            self.history.append(run)
            del self.history[:-self.history_size]
            return run

    def _loop(self, run_immediately: bool):
        if not run_immediately and self._stop_event.wait(self.interval_seconds):
            return
        while not self._stop_event.is_set():
            close_old_connections()
            self.run_once()
            if self._stop_event.wait(self.interval_seconds):
                break
        close_old_connections()

    def start(self, run_immediately: bool = True):
        if self.is_running:
            logger.warning("Delivery scheduler already running")
            return
        logger.info(f"Starting periodic delivery check every {self.interval_seconds} seconds")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(run_immediately,),
            name='delivery-scheduler',
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Delivery scheduler stopped")

    def wait(self):
        """Block until the scheduler thread exits."""
        if self._thread is not None:
            self._thread.join()
