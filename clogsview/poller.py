"""Polling loop that refetches interval history for every charted subject."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from threading import Event, Lock, Thread

from .board import SubjectId, UptimeBoard
from .client import BackendClient, ClientError
from .config import Config

logger = logging.getLogger(__name__)

# Limit concurrent backend requests per cycle.
MAX_WORKERS = 4


class Poller:
    """Threaded poller feeding fresh interval snapshots into the board.

    All subjects are fetched together every ``backend.poll_interval``
    seconds. A failed fetch keeps the subject's previous snapshot, so the
    chart keeps advancing on clock ticks while the backend is unreachable.

    Example:
        poller = Poller(config, client, board)
        poller.start()
        # ... later ...
        poller.stop()
    """

    def __init__(self, config: Config, client: BackendClient, board: UptimeBoard) -> None:
        """Initialize the poller.

        Args:
            config: Application configuration with the subjects to poll.
            client: Backend client used to fetch intervals.
            board: Board receiving each fetched snapshot.
        """
        self._config = config
        self._client = client
        self._board = board
        self._stop_event = Event()
        self._thread: Thread | None = None
        self._uptime: dict[str, float] = {}
        self._uptime_lock = Lock()
        self._failures: dict[SubjectId, int] = {}

    def start(self) -> None:
        """Start the poll loop in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Poller already running")
            return

        self._stop_event.clear()
        self._thread = Thread(target=self._run_loop, daemon=True, name="poll-loop")
        self._thread.start()
        logger.info(
            "Poller started for %d subject(s)%s at %ds interval",
            len(self._config.subjects),
            " and the fleet" if self._config.fleet else "",
            self._config.backend.poll_interval,
        )

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the poll loop gracefully.

        Args:
            timeout: Maximum seconds to wait for the loop to stop.
        """
        if self._thread is None or not self._thread.is_alive():
            return

        logger.info("Stopping poller...")
        self._stop_event.set()
        self._thread.join(timeout=timeout)

        if self._thread.is_alive():
            logger.warning("Poller thread did not stop within timeout")
        else:
            logger.info("Poller stopped")

    def is_running(self) -> bool:
        """Check if the poll loop is currently running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def uptime(self) -> dict[str, float]:
        """Backend uptime ratio per container ID from the last successful poll."""
        with self._uptime_lock:
            return dict(self._uptime)

    def poll_once(self) -> int:
        """Fetch every subject once and hand the snapshots to the board.

        Returns:
            Number of subjects fetched successfully.
        """
        subject_ids = self._config.subject_ids
        updated = 0

        with ThreadPoolExecutor(max_workers=MAX_WORKERS) as executor:
            futures = {
                executor.submit(self._client.fetch_intervals, subject_id): subject_id for subject_id in subject_ids
            }

            for future in as_completed(futures):
                subject_id = futures[future]
                try:
                    intervals = future.result()
                except ClientError as e:
                    self._record_failure(subject_id, e)
                    continue

                if self._failures.pop(subject_id, 0):
                    logger.info("Fetching %s recovered", subject_id or "fleet")
                self._board.update_intervals(subject_id, intervals)
                updated += 1

        self._refresh_uptime()
        return updated

    def _record_failure(self, subject_id: SubjectId, error: Exception) -> None:
        count = self._failures.get(subject_id, 0) + 1
        self._failures[subject_id] = count
        # Log the first failure loudly, repeats only at debug level
        if count == 1:
            logger.warning("Failed to fetch intervals for %s: %s", subject_id or "fleet", error)
        else:
            logger.debug("Fetching %s still failing (%d in a row): %s", subject_id or "fleet", count, error)

    def _refresh_uptime(self) -> None:
        try:
            uptime = self._client.fetch_uptime()
        except ClientError as e:
            logger.debug("Failed to fetch uptime figures: %s", e)
            return

        with self._uptime_lock:
            self._uptime = uptime

    def _run_loop(self) -> None:
        """Main poll loop - runs in background thread."""
        logger.debug("Poll loop started")

        while not self._stop_event.is_set():
            started = time.monotonic()
            updated = self.poll_once()
            logger.debug(
                "Poll cycle fetched %d/%d subjects in %.2fs",
                updated,
                len(self._config.subject_ids),
                time.monotonic() - started,
            )

            # Use wait() so we can be interrupted by stop_event
            self._stop_event.wait(timeout=self._config.backend.poll_interval)

        logger.debug("Poll loop exited")
