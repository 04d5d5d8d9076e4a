"""Data models for container state intervals and the uptime timeline."""

from dataclasses import dataclass, field
from typing import Any

# Label every container spends its healthy time in.
RUNNING_STATE = "running"


@dataclass(frozen=True)
class Interval:
    """A recorded span during which a subject held one state.

    Attributes:
        subject_id: Container ID the interval belongs to, or None when the
            backend did not attribute it (fleet queries).
        start_time: UNIX timestamp (seconds) the state was entered.
        end_time: UNIX timestamp the state was left, or None while still ongoing.
        state: State label reported by the agent (e.g. "running", "exited").
    """

    subject_id: str | None
    start_time: float
    end_time: float | None
    state: str

    @property
    def is_open(self) -> bool:
        """Whether the interval has no recorded end yet."""
        return self.end_time is None


@dataclass(frozen=True)
class Bucket:
    """A fixed-width time slice of an interval, rendered as one bar."""

    start_time: float
    end_time: float
    state: str

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class SeriesRow:
    """One-hot row for a single bucket.

    Attributes:
        index: 1-based position of the bucket in the timeline.
        start_time: Start of the bucket.
        end_time: End of the bucket.
        values: Mapping of channel (state label) to 0 or 1, in channel order.
    """

    index: int
    start_time: float
    end_time: float
    values: dict[str, int]

    @property
    def state(self) -> str:
        """The single channel set to 1."""
        for channel, value in self.values.items():
            if value:
                return channel
        raise ValueError(f"Row {self.index} has no active channel")


@dataclass(frozen=True)
class Series:
    """Rendered timeline for one subject at one point in time.

    Attributes:
        subject_id: Container ID, or None for the whole fleet.
        channels: Distinct state labels in rendering order.
        rows: One row per bucket, oldest first.
        generated_at: The "now" the series was computed against, or None
            before the clock has ticked.
    """

    subject_id: str | None
    channels: tuple[str, ...] = ()
    rows: tuple[SeriesRow, ...] = ()
    generated_at: float | None = None
    state_durations: dict[str, float] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def uptime_percentage(self) -> float | None:
        """Share of charted time spent running (0.0-100.0), None if nothing is charted."""
        total = sum(self.state_durations.values())
        if total <= 0:
            return None
        return self.state_durations.get(RUNNING_STATE, 0.0) / total * 100.0

    def to_dict(self, colors: dict[str, str] | None = None) -> dict[str, Any]:
        """Convert to the JSON shape consumed by the stacked bar chart."""
        colors = colors or {}
        rows = []
        for row in self.rows:
            entry: dict[str, Any] = {
                "name": str(row.index),
                "start_time": row.start_time,
                "end_time": row.end_time,
            }
            entry.update(row.values)
            rows.append(entry)

        uptime = self.uptime_percentage
        return {
            "subject": self.subject_id,
            "channels": [{"state": channel, "color": colors.get(channel)} for channel in self.channels],
            "rows": rows,
            "uptime_percentage": round(uptime, 2) if uptime is not None else None,
            "generated_at": self.generated_at,
        }
