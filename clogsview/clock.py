"""Dashboard clock that advances "now" on a fixed cadence.

Open intervals are charted up to "now", and the lookback window slides with
it, so every tick triggers a recomputation without refetching any data.
"""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

TickListener = Callable[[float], None]


class Clock:
    """Monotonically non-decreasing wall clock ticked by a background thread.

    Until the first tick ``now()`` returns None.

    Example:
        clock = Clock(tick_interval=5)
        clock.subscribe(board.on_tick)
        clock.start()
        # ... later ...
        clock.stop()
    """

    def __init__(self, tick_interval: float, time_func: Callable[[], float] = time.time) -> None:
        """Initialize the clock.

        Args:
            tick_interval: Seconds between ticks.
            time_func: Wall clock source returning UNIX seconds.
        """
        if tick_interval <= 0:
            raise ValueError(f"Tick interval must be positive (got {tick_interval})")
        self.tick_interval = tick_interval
        self._time_func = time_func
        self._now: float | None = None
        self._listeners: list[TickListener] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def now(self) -> float | None:
        """Return the time of the last tick, or None if the clock never ticked."""
        with self._lock:
            return self._now

    def subscribe(self, listener: TickListener) -> None:
        """Register a callback invoked with the new "now" after every tick."""
        with self._lock:
            self._listeners.append(listener)

    def tick(self) -> float:
        """Advance "now" to the current wall time and notify listeners.

        A wall clock that stepped backwards does not move "now" back.

        Returns:
            The new value of "now".
        """
        wall = self._time_func()
        with self._lock:
            if self._now is None or wall > self._now:
                self._now = wall
            elif wall < self._now:
                logger.debug("Wall clock went backwards by %.3fs, holding", self._now - wall)
            now = self._now
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(now)
            except Exception as e:
                logger.error("Tick listener failed: %s", e)
        return now

    def start(self) -> None:
        """Start ticking in a background thread. The first tick is immediate."""
        if self._thread and self._thread.is_alive():
            logger.warning("Clock already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="clock", daemon=True)
        self._thread.start()
        logger.info("Clock started (tick interval: %ss)", self.tick_interval)

    def stop(self) -> None:
        """Stop the tick thread gracefully."""
        if not self._thread or not self._thread.is_alive():
            return

        logger.info("Stopping clock...")
        self._stop_event.set()
        self._thread.join(timeout=5)

        if self._thread.is_alive():
            logger.warning("Clock thread did not stop gracefully")
        else:
            logger.info("Clock stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        """Tick loop - runs in background thread."""
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self.tick_interval)
