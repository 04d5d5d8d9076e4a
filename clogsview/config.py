"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .colors import DEFAULT_STATE_COLORS


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


DEFAULT_BACKEND_URL = "http://localhost:8000/api"

# Minimum interval between backend polls in seconds.
# Lower values hammer the backend with one request per subject per cycle.
MIN_POLL_INTERVAL = 1


@dataclass(frozen=True)
class BackendConfig:
    """Configuration for the clogs backend the intervals are fetched from."""

    url: str = DEFAULT_BACKEND_URL
    timeout: int = 10  # seconds per request
    poll_interval: int = 5  # seconds between refetches

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigError("Backend URL cannot be empty")
        if not self.url.startswith(("http://", "https://")):
            raise ConfigError(f"Backend URL must start with http:// or https://, got '{self.url}'")
        if self.timeout < 1:
            raise ConfigError(f"Backend timeout must be at least 1 second (got {self.timeout})")
        if self.poll_interval < MIN_POLL_INTERVAL:
            raise ConfigError(
                f"Poll interval must be at least {MIN_POLL_INTERVAL} second(s) (got {self.poll_interval})"
            )


@dataclass(frozen=True)
class TimelineConfig:
    """Configuration for the uptime heartbeat timeline."""

    bucket_width_seconds: float = 30  # size of each bar
    lookback_seconds: float = 3600  # how far back the timeline extends
    tick_interval_seconds: float = 5  # how often "now" advances

    def __post_init__(self) -> None:
        if self.bucket_width_seconds <= 0:
            raise ConfigError(f"Bucket width must be positive (got {self.bucket_width_seconds})")
        if self.lookback_seconds <= 0:
            raise ConfigError(f"Lookback must be positive (got {self.lookback_seconds})")
        if self.tick_interval_seconds <= 0:
            raise ConfigError(f"Tick interval must be positive (got {self.tick_interval_seconds})")

    @property
    def max_buckets(self) -> int:
        """Upper bound on bars per open-ended subject."""
        return int(self.lookback_seconds // self.bucket_width_seconds) + 1


@dataclass(frozen=True)
class SubjectConfig:
    """A container whose timeline is charted."""

    id: str
    name: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigError("Subject id cannot be empty")

    @property
    def label(self) -> str:
        """Display name, falling back to the short container ID."""
        return self.name or self.id[:8]


@dataclass(frozen=True)
class ApiConfig:
    """Configuration for JSON API server."""

    enabled: bool = True
    port: int = 8080

    def __post_init__(self) -> None:
        if self.port < 1 or self.port > 65535:
            raise ConfigError(f"API port must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    subjects: list[SubjectConfig] = field(default_factory=list)
    fleet: bool = True
    backend: BackendConfig = field(default_factory=BackendConfig)
    timeline: TimelineConfig = field(default_factory=TimelineConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    colors: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_STATE_COLORS))

    def __post_init__(self) -> None:
        if not self.subjects and not self.fleet:
            raise ConfigError("At least one subject must be configured when the fleet timeline is disabled")
        ids = [subject.id for subject in self.subjects]
        duplicates = [subject_id for subject_id in ids if ids.count(subject_id) > 1]
        if duplicates:
            raise ConfigError(f"Duplicate subject ids found: {set(duplicates)}")

    @property
    def subject_ids(self) -> list[str | None]:
        """IDs to poll; None stands for the fleet-wide query."""
        ids: list[str | None] = [subject.id for subject in self.subjects]
        if self.fleet:
            ids.insert(0, None)
        return ids


def _parse_subject_config(data: dict | str, index: int) -> SubjectConfig:
    """Parse a single subject entry (a bare ID string or a mapping)."""
    if isinstance(data, str):
        return SubjectConfig(id=data)
    if not isinstance(data, dict):
        raise ConfigError(f"Subject entry {index} must be a string or a dictionary")

    subject_id = data.get("id")
    if subject_id is None:
        raise ConfigError(f"Subject entry {index} is missing 'id' field")

    name = data.get("name")
    return SubjectConfig(
        id=str(subject_id),
        name=str(name) if name is not None else None,
    )


def _parse_backend_config(data: dict | None) -> BackendConfig:
    """Parse backend configuration section."""
    if data is None:
        return BackendConfig()
    if not isinstance(data, dict):
        raise ConfigError("'backend' section must be a dictionary")

    try:
        return BackendConfig(
            url=str(data.get("url", DEFAULT_BACKEND_URL)).rstrip("/"),
            timeout=int(data.get("timeout", 10)),
            poll_interval=int(data.get("poll_interval", 5)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid backend setting: {e}")


def _parse_timeline_config(data: dict | None) -> TimelineConfig:
    """Parse timeline configuration section."""
    if data is None:
        return TimelineConfig()
    if not isinstance(data, dict):
        raise ConfigError("'timeline' section must be a dictionary")

    try:
        return TimelineConfig(
            bucket_width_seconds=float(data.get("bucket_width_seconds", 30)),
            lookback_seconds=float(data.get("lookback_seconds", 3600)),
            tick_interval_seconds=float(data.get("tick_interval_seconds", 5)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid timeline setting: {e}")


def _parse_api_config(data: dict | None) -> ApiConfig:
    """Parse API configuration section."""
    if data is None:
        return ApiConfig()
    if not isinstance(data, dict):
        raise ConfigError("'api' section must be a dictionary")

    try:
        return ApiConfig(
            enabled=bool(data.get("enabled", True)),
            port=int(data.get("port", 8080)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid api setting: {e}")


def _parse_colors(data: dict | None) -> dict[str, str]:
    """Merge configured state colors over the built-in table."""
    colors = dict(DEFAULT_STATE_COLORS)
    if data is None:
        return colors
    if not isinstance(data, dict):
        raise ConfigError("'colors' section must be a dictionary")

    for state, color in data.items():
        color = str(color)
        if not color.startswith("#"):
            raise ConfigError(f"Color for state '{state}' must be a hex value like '#4ade80', got '{color}'")
        colors[str(state)] = color
    return colors


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - CLOGSVIEW_BACKEND_URL: Override backend.url
    - CLOGSVIEW_POLL_INTERVAL: Override backend.poll_interval
    - CLOGSVIEW_BUCKET_WIDTH: Override timeline.bucket_width_seconds
    - CLOGSVIEW_LOOKBACK: Override timeline.lookback_seconds
    - CLOGSVIEW_TICK_INTERVAL: Override timeline.tick_interval_seconds
    - CLOGSVIEW_API_PORT: Override api.port
    - CLOGSVIEW_API_ENABLED: Override api.enabled (true/false)
    """
    for section in ("backend", "timeline", "api"):
        if config_data.get(section) is None:
            config_data[section] = {}

    backend_url = os.environ.get("CLOGSVIEW_BACKEND_URL")
    if backend_url is not None:
        config_data["backend"]["url"] = backend_url

    poll_interval = os.environ.get("CLOGSVIEW_POLL_INTERVAL")
    if poll_interval is not None:
        config_data["backend"]["poll_interval"] = int(poll_interval)

    bucket_width = os.environ.get("CLOGSVIEW_BUCKET_WIDTH")
    if bucket_width is not None:
        config_data["timeline"]["bucket_width_seconds"] = float(bucket_width)

    lookback = os.environ.get("CLOGSVIEW_LOOKBACK")
    if lookback is not None:
        config_data["timeline"]["lookback_seconds"] = float(lookback)

    tick_interval = os.environ.get("CLOGSVIEW_TICK_INTERVAL")
    if tick_interval is not None:
        config_data["timeline"]["tick_interval_seconds"] = float(tick_interval)

    api_port = os.environ.get("CLOGSVIEW_API_PORT")
    if api_port is not None:
        config_data["api"]["port"] = int(api_port)

    api_enabled = os.environ.get("CLOGSVIEW_API_ENABLED")
    if api_enabled is not None:
        config_data["api"]["enabled"] = api_enabled.lower() in ("true", "1", "yes")

    return config_data


def load_config(config_path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    try:
        data = _apply_env_overrides(data)
    except ValueError as e:
        raise ConfigError(f"Invalid environment override: {e}")

    subjects_data = data.get("subjects")
    subjects: list[SubjectConfig] = []
    if subjects_data is not None:
        if not isinstance(subjects_data, list):
            raise ConfigError("'subjects' must be a list")
        subjects = [_parse_subject_config(entry, i) for i, entry in enumerate(subjects_data)]

    return Config(
        subjects=subjects,
        fleet=bool(data.get("fleet", True)),
        backend=_parse_backend_config(data.get("backend")),
        timeline=_parse_timeline_config(data.get("timeline")),
        api=_parse_api_config(data.get("api")),
        colors=_parse_colors(data.get("colors")),
    )
