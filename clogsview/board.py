"""Latest interval snapshots and rendered uptime series per subject."""

import logging
import threading
from collections.abc import Callable, Iterable

from .config import TimelineConfig
from .models import Interval, Series
from .timeline import TimelineError, compute_series

logger = logging.getLogger(__name__)

SubjectId = str | None


class UptimeBoard:
    """Recomputes each subject's timeline on every fetch and every clock tick.

    The board only stores inputs (the last fetched intervals) and outputs
    (the last rendered series); each recomputation is a fresh run of the
    timeline pipeline. The one thing carried between runs is the channel
    order of each subject, so state colors keep their positions.

    Example:
        board = UptimeBoard(config.timeline, now=clock.now)
        clock.subscribe(board.on_tick)
        board.update_intervals("3f2a9c", client.fetch_intervals("3f2a9c"))
        series = board.render_series("3f2a9c")
    """

    def __init__(self, config: TimelineConfig, now: Callable[[], float | None]) -> None:
        """Initialize the board.

        Args:
            config: Bucket width and lookback settings.
            now: Returns the current dashboard time (None before the first tick).
        """
        self._config = config
        self._now = now
        self._lock = threading.Lock()
        self._intervals: dict[SubjectId, tuple[Interval, ...]] = {}
        self._series: dict[SubjectId, Series] = {}
        self._channels: dict[SubjectId, tuple[str, ...]] = {}

    @property
    def subjects(self) -> list[SubjectId]:
        """Subjects that have received at least one snapshot."""
        with self._lock:
            return list(self._intervals)

    def update_intervals(self, subject_id: SubjectId, intervals: Iterable[Interval]) -> Series | None:
        """Replace a subject's interval history and recompute its series.

        Returns:
            The new series, or None if the recomputation failed.
        """
        snapshot = tuple(intervals)
        with self._lock:
            self._intervals[subject_id] = snapshot
        return self._recompute(subject_id, snapshot, self._now())

    def on_tick(self, now: float) -> None:
        """Clock listener: re-derive every subject against the new "now"."""
        with self._lock:
            snapshots = list(self._intervals.items())

        failed = 0
        for subject_id, intervals in snapshots:
            if self._recompute(subject_id, intervals, now) is None:
                failed += 1

        logger.debug("Recomputed %d subjects at %.0f (%d failed)", len(snapshots), now, failed)

    def render_series(self, subject_id: SubjectId = None) -> Series:
        """Return the latest series for a subject.

        Subjects without data render as an empty series.
        """
        with self._lock:
            series = self._series.get(subject_id)
        if series is None:
            return Series(subject_id=subject_id, generated_at=self._now())
        return series

    def _recompute(self, subject_id: SubjectId, intervals: tuple[Interval, ...], now: float | None) -> Series | None:
        """Run the pipeline for one subject and publish the result.

        A failure is logged and leaves the subject's previous series in place.
        A result is dropped when its snapshot has been replaced meanwhile, or
        when a series computed against a later "now" is already published.
        """
        with self._lock:
            known_channels = self._channels.get(subject_id, ())

        try:
            series = compute_series(
                intervals,
                bucket_width=self._config.bucket_width_seconds,
                lookback_seconds=self._config.lookback_seconds,
                now=now,
                subject_id=subject_id,
                known_channels=known_channels,
            )
        except TimelineError as e:
            logger.error("Failed to compute timeline for %s: %s", subject_id or "fleet", e)
            return None

        with self._lock:
            if self._intervals.get(subject_id) is not intervals:
                return series
            if _is_newer(self._series.get(subject_id), series):
                # Published series must never move back in time
                return series
            self._series[subject_id] = series
            self._channels[subject_id] = series.channels
        return series


def _is_newer(current: Series | None, candidate: Series) -> bool:
    """Whether current was computed against a later "now" than candidate.

    A series computed before the first tick (generated_at None) is older
    than any ticked one.
    """
    if current is None or current.generated_at is None:
        return False
    if candidate.generated_at is None:
        return True
    return current.generated_at > candidate.generated_at
