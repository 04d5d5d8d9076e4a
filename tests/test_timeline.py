"""Tests for the timeline module."""

import pytest

from clogsview.models import Bucket, Interval
from clogsview.timeline import (
    TimelineError,
    assign_channels,
    build_series,
    chunk_interval,
    chunk_intervals,
    compute_series,
    effective_end,
    filter_window,
)


def _interval(start: float, end: float | None, state: str = "running") -> Interval:
    return Interval(subject_id="abc123", start_time=start, end_time=end, state=state)


def _spans(buckets: list[Bucket]) -> list[tuple[float, float]]:
    return [(b.start_time, b.end_time) for b in buckets]


class TestEffectiveEnd:
    """Tests for effective_end function."""

    def test_closed_interval_uses_recorded_end(self) -> None:
        """Closed intervals end at their end_time regardless of now."""
        assert effective_end(_interval(0, 95), now=500) == 95

    def test_open_interval_uses_now(self) -> None:
        """Open intervals end at now."""
        assert effective_end(_interval(0, None), now=50) == 50

    def test_open_interval_before_first_tick(self) -> None:
        """Open intervals end at their own start while now is unknown."""
        assert effective_end(_interval(10, None), now=None) == 10


class TestChunkInterval:
    """Tests for chunk_interval function."""

    def test_closed_interval_with_remainder(self) -> None:
        """A 95s interval with 30s buckets yields three full buckets and a 5s remainder."""
        buckets = chunk_interval(_interval(0, 95), bucket_width=30)

        assert _spans(buckets) == [(0, 30), (30, 60), (60, 90), (90, 95)]
        assert all(b.state == "running" for b in buckets)

    def test_open_interval_ends_at_now(self) -> None:
        """An open interval is chunked up to now."""
        buckets = chunk_interval(_interval(0, None), bucket_width=30, now=50)

        assert _spans(buckets) == [(0, 30), (30, 50)]

    def test_exact_multiple_has_no_remainder(self) -> None:
        """An interval that divides evenly yields only full buckets."""
        buckets = chunk_interval(_interval(100, 190), bucket_width=30)

        assert _spans(buckets) == [(100, 130), (130, 160), (160, 190)]

    def test_interval_shorter_than_width(self) -> None:
        """A short interval yields a single partial bucket."""
        buckets = chunk_interval(_interval(40, 70, "exited"), bucket_width=30)

        assert buckets == [Bucket(start_time=40, end_time=70, state="exited")]

    def test_zero_length_interval_yields_nothing(self) -> None:
        """An interval starting and ending at the same time yields no buckets."""
        assert chunk_interval(_interval(40, 40), bucket_width=30) == []

    def test_open_interval_before_first_tick_yields_nothing(self) -> None:
        """An open interval yields no buckets until the clock ticks."""
        assert chunk_interval(_interval(0, None), bucket_width=30, now=None) == []

    def test_open_interval_ahead_of_clock_yields_nothing(self) -> None:
        """An open interval starting after now (clock skew) yields no buckets."""
        assert chunk_interval(_interval(100, None), bucket_width=30, now=90) == []

    @pytest.mark.parametrize("width", [0, -5, -0.1])
    def test_rejects_non_positive_width(self, width: float) -> None:
        """Zero or negative bucket widths are rejected."""
        with pytest.raises(TimelineError, match="Bucket width must be positive"):
            chunk_interval(_interval(0, 95), bucket_width=width)

    def test_rejects_interval_ending_before_start(self) -> None:
        """An interval ending before it starts is rejected, not clamped."""
        with pytest.raises(TimelineError, match="ends before it starts"):
            chunk_interval(_interval(100, 50), bucket_width=30)

    def test_timeline_error_is_value_error(self) -> None:
        """TimelineError can be caught as ValueError."""
        with pytest.raises(ValueError):
            chunk_interval(_interval(0, 95), bucket_width=0)

    @pytest.mark.parametrize(
        "start,end,width",
        [
            (0, 95, 30),
            (1700000000, 1700003601, 120),
            (10.5, 77.25, 7.5),
            (0, 1, 30),
            (5, 3605, 1),
        ],
    )
    def test_buckets_cover_interval_without_gaps(self, start: float, end: float, width: float) -> None:
        """Buckets tile the interval exactly and respect the width bound."""
        buckets = chunk_interval(_interval(start, end), bucket_width=width)

        assert buckets[0].start_time == start
        assert buckets[-1].end_time == end
        for previous, current in zip(buckets, buckets[1:]):
            assert previous.end_time == current.start_time
        assert sum(b.duration for b in buckets) == pytest.approx(end - start)
        assert all(b.duration <= width for b in buckets)
        assert all(b.duration == pytest.approx(width) for b in buckets[:-1])

    def test_fractional_width_has_no_zero_width_tail(self) -> None:
        """Float rounding in the bucket count never adds an empty trailing bar."""
        buckets = chunk_interval(_interval(1700000290.886, 1700000372.286), bucket_width=0.1)

        assert all(b.duration > 0 for b in buckets)
        assert buckets[-1].end_time == 1700000372.286
        for previous, current in zip(buckets, buckets[1:]):
            assert previous.end_time == current.start_time

    def test_is_deterministic(self) -> None:
        """Identical inputs produce identical buckets."""
        interval = _interval(0, None)

        assert chunk_interval(interval, 30, now=200) == chunk_interval(interval, 30, now=200)

    def test_does_not_modify_interval(self) -> None:
        """The source interval is left untouched."""
        interval = _interval(0, None)
        chunk_interval(interval, 30, now=200)

        assert interval.end_time is None


class TestChunkIntervals:
    """Tests for chunk_intervals function."""

    def test_flattens_in_order(self) -> None:
        """Buckets from consecutive intervals are concatenated in order."""
        intervals = [_interval(0, 40, "running"), _interval(40, 70, "exited"), _interval(70, None, "running")]

        buckets = chunk_intervals(intervals, bucket_width=30, now=100)

        assert [(b.start_time, b.end_time, b.state) for b in buckets] == [
            (0, 30, "running"),
            (30, 40, "running"),
            (40, 70, "exited"),
            (70, 100, "running"),
        ]

    def test_empty_sequence(self) -> None:
        """No intervals means no buckets."""
        assert chunk_intervals([], bucket_width=30, now=100) == []


class TestFilterWindow:
    """Tests for filter_window function."""

    def test_keeps_buckets_ending_inside_window(self) -> None:
        """Only buckets ending at or after the horizon survive."""
        buckets = chunk_intervals(
            [_interval(0, 40, "running"), _interval(40, 70, "exited")],
            bucket_width=30,
            now=70,
        )

        kept = filter_window(buckets, lookback_seconds=30, now=70)

        assert [(b.start_time, b.end_time, b.state) for b in kept] == [
            (30, 40, "running"),
            (40, 70, "exited"),
        ]

    def test_bucket_ending_exactly_at_horizon_is_kept(self) -> None:
        """The horizon is inclusive."""
        bucket = Bucket(start_time=0, end_time=40, state="running")

        assert filter_window([bucket], lookback_seconds=30, now=70) == [bucket]

    def test_long_interval_contributes_trailing_buckets(self) -> None:
        """A long-running interval straddling the horizon keeps only its recent buckets."""
        buckets = chunk_interval(_interval(0, None), bucket_width=30, now=10_000)

        kept = filter_window(buckets, lookback_seconds=3600, now=10_000)

        assert kept[0].end_time >= 10_000 - 3600
        assert kept[-1].end_time == 10_000
        assert len(kept) <= 3600 // 30 + 1

    def test_is_idempotent(self) -> None:
        """Filtering twice with the same parameters changes nothing."""
        buckets = chunk_intervals(
            [_interval(0, 500, "running"), _interval(500, 620, "paused"), _interval(620, None, "running")],
            bucket_width=30,
            now=900,
        )

        once = filter_window(buckets, lookback_seconds=300, now=900)
        twice = filter_window(once, lookback_seconds=300, now=900)

        assert once == twice

    def test_keeps_everything_before_first_tick(self) -> None:
        """Without a known now no horizon applies."""
        buckets = chunk_interval(_interval(0, 95), bucket_width=30)

        assert filter_window(buckets, lookback_seconds=10, now=None) == buckets

    def test_rejects_non_positive_lookback(self) -> None:
        """Zero lookback is a configuration error."""
        with pytest.raises(TimelineError, match="Lookback must be positive"):
            filter_window([], lookback_seconds=0, now=100)


class TestAssignChannels:
    """Tests for assign_channels function."""

    def test_first_seen_order(self) -> None:
        """Channels follow the order states first appear in."""
        buckets = [
            Bucket(0, 30, "exited"),
            Bucket(30, 60, "running"),
            Bucket(60, 90, "exited"),
            Bucket(90, 120, "paused"),
        ]

        assert assign_channels(buckets) == ("exited", "running", "paused")

    def test_channel_order_is_stable_when_buckets_grow(self) -> None:
        """Appending buckets of known states never reorders channels."""
        first = [Bucket(0, 30, "A"), Bucket(30, 60, "A"), Bucket(60, 90, "B")]
        later = first + [Bucket(90, 120, "A")]

        assert assign_channels(first) == ("A", "B")
        assert assign_channels(later, known_channels=assign_channels(first)) == ("A", "B")
        assert assign_channels(later) == ("A", "B")

    def test_new_state_is_appended(self) -> None:
        """A state never seen before goes after the known channels."""
        buckets = [Bucket(0, 30, "C"), Bucket(30, 60, "A")]

        assert assign_channels(buckets, known_channels=("A", "B")) == ("A", "B", "C")

    def test_known_channels_survive_scrolling_out(self) -> None:
        """Known channels keep their slot even without buckets in the window."""
        buckets = [Bucket(0, 30, "B")]

        assert assign_channels(buckets, known_channels=("A", "B")) == ("A", "B")


class TestBuildSeries:
    """Tests for build_series function."""

    def test_rows_are_one_hot(self) -> None:
        """Every row has exactly one channel set."""
        buckets = [Bucket(0, 30, "running"), Bucket(30, 40, "running"), Bucket(40, 70, "exited")]

        series = build_series(buckets, subject_id="abc123", now=70)

        assert series.channels == ("running", "exited")
        assert [row.values for row in series.rows] == [
            {"running": 1, "exited": 0},
            {"running": 1, "exited": 0},
            {"running": 0, "exited": 1},
        ]
        assert all(sum(row.values.values()) == 1 for row in series.rows)

    def test_rows_are_indexed_from_one(self) -> None:
        """Row indexes are the 1-based bar labels in chronological order."""
        buckets = [Bucket(0, 30, "running"), Bucket(30, 60, "exited")]

        series = build_series(buckets)

        assert [row.index for row in series.rows] == [1, 2]
        assert [row.state for row in series.rows] == ["running", "exited"]

    def test_rows_sum_to_one_with_known_channels(self) -> None:
        """Extra known channels are zero, so rows still sum to one."""
        buckets = [Bucket(0, 30, "running")]

        series = build_series(buckets, known_channels=("exited", "running"))

        assert series.rows[0].values == {"exited": 0, "running": 1}

    def test_empty_buckets_give_empty_series(self) -> None:
        """No buckets render as a blank series, not an error."""
        series = build_series([], subject_id="abc123", now=100)

        assert series.is_empty
        assert series.channels == ()
        assert series.uptime_percentage is None

    def test_records_state_durations(self) -> None:
        """Time charted per state is summed across buckets."""
        buckets = [Bucket(0, 30, "running"), Bucket(30, 40, "running"), Bucket(40, 70, "exited")]

        series = build_series(buckets)

        assert series.state_durations == {"running": 40, "exited": 30}
        assert series.uptime_percentage == pytest.approx(40 / 70 * 100)


class TestComputeSeries:
    """Tests for compute_series function."""

    def test_full_pipeline(self) -> None:
        """Chunking, windowing and one-hot encoding run in sequence."""
        intervals = [_interval(0, 40, "running"), _interval(40, 70, "exited")]

        series = compute_series(intervals, bucket_width=30, lookback_seconds=30, now=70, subject_id="abc123")

        assert series.subject_id == "abc123"
        assert series.generated_at == 70
        assert series.channels == ("running", "exited")
        assert [(r.start_time, r.end_time, r.state) for r in series.rows] == [
            (30, 40, "running"),
            (40, 70, "exited"),
        ]

    def test_closed_interval_retroactively_ends(self) -> None:
        """An open interval closed by a later fetch stops growing."""
        open_series = compute_series([_interval(0, None)], bucket_width=30, lookback_seconds=3600, now=100)
        closed_series = compute_series(
            [_interval(0, 60), _interval(60, None, "exited")],
            bucket_width=30,
            lookback_seconds=3600,
            now=100,
        )

        assert [r.state for r in open_series.rows] == ["running"] * 4
        assert [r.state for r in closed_series.rows] == ["running", "running", "exited", "exited"]

    def test_window_slides_with_now(self) -> None:
        """Advancing now drops old buckets and extends the open one."""
        intervals = [_interval(0, 60, "exited"), _interval(60, None, "running")]

        early = compute_series(intervals, bucket_width=30, lookback_seconds=60, now=90)
        late = compute_series(intervals, bucket_width=30, lookback_seconds=60, now=300)

        assert "exited" in [r.state for r in early.rows]
        assert [r.state for r in late.rows] == ["running"] * 3
        assert late.channels == ("running",)
        assert late.rows[-1].end_time == 300
