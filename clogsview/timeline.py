"""Uptime timeline aggregation.

Turns a sparse sequence of state intervals into the fixed-resolution,
windowed, one-hot series drawn as the heartbeat bar chart:

    intervals --chunk_intervals--> buckets --filter_window--> buckets --build_series--> Series

Every function here is pure: the same intervals, width, horizon and "now"
always produce the same output, so the whole pipeline is simply re-run on
each data refresh and each clock tick.
"""

import math
from collections.abc import Iterable, Sequence

from .models import Bucket, Interval, Series, SeriesRow


class TimelineError(ValueError):
    """Raised when an interval or timeline setting is malformed."""

    pass


def _require_positive(name: str, value: float) -> None:
    if value <= 0:
        raise TimelineError(f"{name} must be positive (got {value})")


def effective_end(interval: Interval, now: float | None) -> float:
    """Return where an interval stops for charting purposes.

    Closed intervals end at their recorded end. Open intervals end at "now";
    before the clock has ticked they end at their own start, so they chart
    as empty until the first tick.
    """
    if not interval.is_open:
        return interval.end_time
    if now is None:
        return interval.start_time
    return now


def chunk_interval(interval: Interval, bucket_width: float, now: float | None = None) -> list[Bucket]:
    """Split one interval into buckets of at most bucket_width seconds.

    Bucket i spans [start + i*width, min(start + (i+1)*width, end)), so only
    the last bucket can be shorter than the width.

    Args:
        interval: Interval to split.
        bucket_width: Bucket size in seconds, must be positive.
        now: Current time, used as the end of an open interval.

    Returns:
        Buckets in chronological order (empty for zero-length intervals).

    Raises:
        TimelineError: If bucket_width is not positive or the interval ends
            before it starts.
    """
    _require_positive("Bucket width", bucket_width)

    if interval.end_time is not None and interval.end_time < interval.start_time:
        raise TimelineError(
            f"Interval for '{interval.subject_id}' ends before it starts "
            f"({interval.end_time} < {interval.start_time})"
        )

    start = interval.start_time
    end = effective_end(interval, now)
    if end <= start:
        # Zero-length, or an open interval seen by a clock that lags its start
        return []

    # The float quotient can round up past the true count; the start check
    # drops the resulting zero-width tail.
    count = math.ceil((end - start) / bucket_width)
    return [
        Bucket(
            start_time=start + i * bucket_width,
            end_time=min(start + (i + 1) * bucket_width, end),
            state=interval.state,
        )
        for i in range(count)
        if start + i * bucket_width < end
    ]


def chunk_intervals(intervals: Iterable[Interval], bucket_width: float, now: float | None = None) -> list[Bucket]:
    """Chunk a whole interval sequence, preserving its order."""
    buckets: list[Bucket] = []
    for interval in intervals:
        buckets.extend(chunk_interval(interval, bucket_width, now))
    return buckets


def filter_window(buckets: Iterable[Bucket], lookback_seconds: float, now: float | None = None) -> list[Bucket]:
    """Keep the buckets that end inside the lookback window.

    A bucket survives when end_time >= now - lookback_seconds. Before the
    clock has ticked no horizon is known and every bucket is kept.

    Raises:
        TimelineError: If lookback_seconds is not positive.
    """
    _require_positive("Lookback", lookback_seconds)

    if now is None:
        return list(buckets)

    horizon = now - lookback_seconds
    return [bucket for bucket in buckets if bucket.end_time >= horizon]


def assign_channels(buckets: Iterable[Bucket], known_channels: Sequence[str] = ()) -> tuple[str, ...]:
    """Return the channel order for a bucket set.

    Known channels keep their positions; states seen for the first time are
    appended in first-seen order.
    """
    channels = list(dict.fromkeys(known_channels))
    seen = set(channels)
    for bucket in buckets:
        if bucket.state not in seen:
            seen.add(bucket.state)
            channels.append(bucket.state)
    return tuple(channels)


def build_series(
    buckets: Sequence[Bucket],
    subject_id: str | None = None,
    now: float | None = None,
    known_channels: Sequence[str] = (),
) -> Series:
    """Build the one-hot series for a filtered bucket sequence.

    Args:
        buckets: Filtered buckets, oldest first.
        subject_id: Subject the series belongs to (None for the fleet).
        now: Time the series is computed against.
        known_channels: Channel order already rendered for this subject.

    Returns:
        Series with one row per bucket, each row summing to exactly 1.
    """
    channels = assign_channels(buckets, known_channels)

    rows = []
    durations: dict[str, float] = {}
    for index, bucket in enumerate(buckets, start=1):
        values = {channel: 1 if channel == bucket.state else 0 for channel in channels}
        rows.append(
            SeriesRow(
                index=index,
                start_time=bucket.start_time,
                end_time=bucket.end_time,
                values=values,
            )
        )
        durations[bucket.state] = durations.get(bucket.state, 0.0) + bucket.duration

    return Series(
        subject_id=subject_id,
        channels=channels,
        rows=tuple(rows),
        generated_at=now,
        state_durations=durations,
    )


def compute_series(
    intervals: Iterable[Interval],
    bucket_width: float,
    lookback_seconds: float,
    now: float | None = None,
    subject_id: str | None = None,
    known_channels: Sequence[str] = (),
) -> Series:
    """Run the full chunk, filter and build pipeline for one subject."""
    buckets = chunk_intervals(intervals, bucket_width, now)
    windowed = filter_window(buckets, lookback_seconds, now)
    return build_series(windowed, subject_id=subject_id, now=now, known_channels=known_channels)
