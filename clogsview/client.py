"""HTTP client for the clogs backend."""

import logging
from typing import Any

import requests

from .config import BackendConfig
from .models import Interval

logger = logging.getLogger(__name__)

USER_AGENT = "clogsview/0.1"

SECTIONS_PATH = "/processors/uptime/sections"
UPTIME_PATH = "/processors/uptime"
HEALTH_PATH = "/health"


class ClientError(Exception):
    """Raised when the backend cannot be reached or returns unusable data."""

    pass


def _as_timestamp(value: Any, field_name: str, index: int) -> float:
    # bool is an int subclass but never a valid timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ClientError(f"Section {index} has invalid '{field_name}': {value!r}")
    return value


def parse_interval(data: Any, index: int, subject_id: str | None = None) -> Interval:
    """Parse one uptime section object into an Interval.

    Args:
        data: Decoded JSON object with start_time, end_time and state.
        index: Position in the response, for error messages.
        subject_id: Subject the sections were requested for, used when the
            object does not name its container.

    Raises:
        ClientError: If required fields are missing or mistyped.
    """
    if not isinstance(data, dict):
        raise ClientError(f"Section {index} must be an object")

    if "start_time" not in data:
        raise ClientError(f"Section {index} is missing 'start_time'")
    start_time = _as_timestamp(data["start_time"], "start_time", index)

    end_raw = data.get("end_time")
    end_time = _as_timestamp(end_raw, "end_time", index) if end_raw is not None else None

    state = data.get("state")
    if not isinstance(state, str) or not state:
        raise ClientError(f"Section {index} has invalid 'state': {state!r}")

    container_id = data.get("container_id", subject_id)
    return Interval(
        subject_id=str(container_id) if container_id is not None else None,
        start_time=start_time,
        end_time=end_time,
        state=state,
    )


class BackendClient:
    """Fetches container state intervals and uptime figures from the backend.

    Each call is a full snapshot: the caller replaces whatever it held before.
    """

    def __init__(self, config: BackendConfig) -> None:
        self.config = config
        self._headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.config.url}{path}"
        try:
            response = requests.get(
                url,
                params=params,
                headers=self._headers,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise ClientError(f"Request to {url} failed: {e}")
        except ValueError as e:
            raise ClientError(f"Invalid JSON from {url}: {e}")

    def fetch_intervals(self, subject_id: str | None = None) -> list[Interval]:
        """Fetch the state intervals of one container, or of the fleet.

        Args:
            subject_id: Container ID, or None for every container.

        Returns:
            Intervals in the order the backend returned them (oldest first).

        Raises:
            ClientError: On transport errors or a malformed response.
        """
        params = {"container_id": subject_id} if subject_id is not None else None
        payload = self._get(SECTIONS_PATH, params)

        if not isinstance(payload, list):
            raise ClientError(f"Expected a list of uptime sections, got {type(payload).__name__}")

        intervals = [parse_interval(item, i, subject_id) for i, item in enumerate(payload)]
        logger.debug("Fetched %d intervals for %s", len(intervals), subject_id or "fleet")
        return intervals

    def fetch_uptime(self) -> dict[str, float]:
        """Fetch the backend's uptime ratio (0.0-1.0) per container ID."""
        payload = self._get(UPTIME_PATH)

        if not isinstance(payload, dict):
            raise ClientError(f"Expected an uptime object, got {type(payload).__name__}")

        uptime: dict[str, float] = {}
        for container_id, entry in payload.items():
            if isinstance(entry, dict):
                value = entry.get("uptime_percentage")
            else:
                value = entry
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                logger.debug("Skipping uptime entry for %s: %r", container_id, entry)
                continue
            uptime[str(container_id)] = float(value)
        return uptime

    def check_health(self) -> bool:
        """Return True if the backend health endpoint answers."""
        try:
            self._get(HEALTH_PATH)
            return True
        except ClientError as e:
            logger.debug("Backend health check failed: %s", e)
            return False
