# SPDX-License-Identifier: Apache-2.0

"""
Timer-driven triggers for the notification queue and the mandate sweep.
"""

import logging
import threading
import time
from typing import Optional

from models.responses import ProcessingReport

logger = logging.getLogger(__name__)


class QueueScheduler(threading.Thread):
    """
    Background thread running process_queue() on a fixed interval and the
    mandate sweep on its own, longer interval.

    run_now() wakes the thread for an immediate queue pass; stop() ends it
    after the pass in progress.
    """

    def __init__(self, queue_processor, mandate_monitor=None,
                 queue_interval: float = 300, sweep_interval: float = 86400):
        super().__init__(name="queue-scheduler", daemon=True)
        self.queue_processor = queue_processor
        self.mandate_monitor = mandate_monitor
        self.queue_interval = queue_interval
        self.sweep_interval = sweep_interval
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        # first tick sweeps
        self._next_sweep = 0.0
        self.last_report: Optional[ProcessingReport] = None

    def run_now(self) -> None:
        """Request an immediate queue pass."""
        self._wake_event.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self.is_alive():
            self.join(timeout)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        logger.info(
            "Queue scheduler started",
            extra={"extra_fields": {"queue_interval": self.queue_interval, "sweep_interval": self.sweep_interval}}
        )
        while not self._stop_event.is_set():
            self.tick()
            self._wake_event.wait(self.queue_interval)
            self._wake_event.clear()

        logger.info("Queue scheduler stopped")

    def tick(self) -> None:
        """Run one queue pass, and the sweep when it is due."""
        self.last_report = self.queue_processor.process_queue()

        if self.mandate_monitor is None:
            return
        if time.monotonic() >= self._next_sweep:
            self._next_sweep = time.monotonic() + self.sweep_interval
            try:
                self.mandate_monitor.sweep()
            except Exception as e:
                # next sweep retries on schedule
                logger.error(f"Mandate sweep failed: {e}", exc_info=True)
