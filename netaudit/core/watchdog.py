"""
Scan Watchdog
Detects stalled scans from a progress heartbeat and force-cancels them
"""

import asyncio
import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

STALL_THRESHOLD = 30.0
FORCE_KILL_THRESHOLD = 60.0
CHECK_INTERVAL = 5.0


class WatchdogState(Enum):
    """Watchdog lifecycle"""
    IDLE = "idle"
    MONITORING = "monitoring"
    WARNING = "warning"
    TERMINATED = "terminated"


class ScanWatchdog:
    """Heartbeat supervisor for one long-running operation.

    Producers call ``update_progress()`` whenever work completes. A
    periodic checker compares the time since the last heartbeat against
    two thresholds. Past ``stall_threshold`` the watchdog enters WARNING.
    Once the heartbeat is older than ``force_kill_threshold`` and the
    warning has stood for the gap between the thresholds, it fires every
    cancel callback once and enters TERMINATED. A heartbeat during
    WARNING returns it to MONITORING.

    ``clock`` is injectable so the staging can be driven without waiting.
    """

    def __init__(self, stall_threshold: float = STALL_THRESHOLD,
                 force_kill_threshold: float = FORCE_KILL_THRESHOLD,
                 check_interval: float = CHECK_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        if force_kill_threshold <= stall_threshold:
            raise ValueError("force_kill_threshold must be greater than stall_threshold")

        self.stall_threshold = stall_threshold
        self.force_kill_threshold = force_kill_threshold
        self.check_interval = check_interval
        self.clock = clock

        self.state = WatchdogState.IDLE
        self.operation: Optional[str] = None
        self.warning: Optional[str] = None
        self.last_heartbeat: Optional[float] = None
        self.warned_at: Optional[float] = None
        self.cancelled = False

        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._task: Optional[asyncio.Task] = None

    def add_cancel_callback(self, callback: Callable[[], None]):
        self._callbacks.append(callback)

    def start_monitoring(self, operation: str = "scan"):
        """Begin supervising; starts the checker if an event loop is running"""
        with self._lock:
            self.state = WatchdogState.MONITORING
            self.operation = operation
            self.warning = None
            self.cancelled = False
            self.last_heartbeat = self.clock()
            self.warned_at = None

        logger.info(f"Watchdog monitoring '{operation}' "
                    f"(stall {self.stall_threshold}s, force-kill {self.force_kill_threshold}s)")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; watchdog checks must be driven manually")
            return
        self._task = loop.create_task(self._run())

    def update_progress(self):
        """Record a heartbeat. Safe to call from any thread."""
        with self._lock:
            if self.state not in (WatchdogState.MONITORING, WatchdogState.WARNING):
                return
            self.last_heartbeat = self.clock()
            if self.state is WatchdogState.WARNING:
                logger.info(f"'{self.operation}' resumed progress")
                self.state = WatchdogState.MONITORING
                self.warning = None
                self.warned_at = None

    def elapsed(self) -> float:
        """Seconds since the last heartbeat"""
        with self._lock:
            if self.last_heartbeat is None:
                return 0.0
            return self.clock() - self.last_heartbeat

    def check(self) -> WatchdogState:
        """Evaluate the thresholds once and return the resulting state"""
        fire = False
        with self._lock:
            if self.state not in (WatchdogState.MONITORING, WatchdogState.WARNING):
                return self.state

            now = self.clock()
            elapsed = now - self.last_heartbeat

            if elapsed > self.stall_threshold and self.state is WatchdogState.MONITORING:
                self.state = WatchdogState.WARNING
                self.warned_at = now
                self.warning = f"'{self.operation}' has made no progress for {elapsed:.0f}s"
                logger.warning(self.warning)
                return self.state

            # The warning always gets its full grace period, however late this check runs
            grace = self.force_kill_threshold - self.stall_threshold
            if elapsed > self.force_kill_threshold and now - self.warned_at >= grace:
                self.state = WatchdogState.TERMINATED
                self.cancelled = True
                fire = True

        # Callbacks run outside the lock so they may call back into the watchdog
        if fire:
            logger.error(f"'{self.operation}' stalled for {elapsed:.0f}s, forcing cancellation")
            for callback in self._callbacks:
                callback()

        return self.state

    def stop_monitoring(self):
        """Stop the checker and return to IDLE"""
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

        with self._lock:
            self.state = WatchdogState.IDLE
            self.warning = None
            self.warned_at = None
        logger.debug(f"Watchdog stopped monitoring '{self.operation}'")

    async def _run(self):
        while True:
            await asyncio.sleep(self.check_interval)
            if self.check() is WatchdogState.TERMINATED:
                break
