"""Chart colors for container states."""

# Fill colors for the Docker container states agents report.
DEFAULT_STATE_COLORS: dict[str, str] = {
    "running": "#4ade80",  # green
    "exited": "#f87171",  # red
    "paused": "#fbbf24",  # yellow
    "restarting": "#fb923c",  # orange
    "created": "#60a5fa",  # blue
    "dead": "#000000",
    "removing": "#a78bfa",  # purple
    "unknown": "#9ca3af",  # gray
    "unhealthy": "#ec4899",  # pink
}

# Used for states missing from the table.
FALLBACK_COLOR = "#8884d8"


class ColorPalette:
    """Extensible state label to color mapping with a fallback color."""

    def __init__(self, colors: dict[str, str] | None = None, fallback: str = FALLBACK_COLOR) -> None:
        self._colors = dict(DEFAULT_STATE_COLORS if colors is None else colors)
        self.fallback = fallback

    def color_for(self, state: str) -> str:
        return self._colors.get(state, self.fallback)

    def for_channels(self, channels: tuple[str, ...] | list[str]) -> dict[str, str]:
        """Resolve a color for every channel of a series."""
        return {channel: self.color_for(channel) for channel in channels}

    def as_dict(self) -> dict[str, str]:
        return dict(self._colors)
