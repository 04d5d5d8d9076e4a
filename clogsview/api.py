"""HTTP API server exposing uptime timelines as chart-ready JSON."""

import errno
import json
import logging
import threading
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

from .board import UptimeBoard
from .colors import ColorPalette
from .config import ApiConfig, SubjectConfig
from .models import Series

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised when an API operation fails."""

    pass


def _series_to_dict(series: Series, palette: ColorPalette) -> Dict[str, Any]:
    """Convert a Series to the JSON payload drawn by the heartbeat chart."""
    return series.to_dict(palette.for_channels(series.channels))


def _subject_to_dict(
    subject: SubjectConfig,
    series: Series,
    backend_uptime: Dict[str, float],
) -> Dict[str, Any]:
    """Summarize one configured subject for the subject list."""
    ratio = backend_uptime.get(subject.id)
    window_uptime = series.uptime_percentage
    return {
        "id": subject.id,
        "name": subject.label,
        "buckets": len(series.rows),
        "channels": list(series.channels),
        "uptime_percentage": round(ratio * 100, 2) if ratio is not None else None,
        "window_uptime_percentage": round(window_uptime, 2) if window_uptime is not None else None,
        "state": series.rows[-1].state if series.rows else None,
    }


class TimelineHandler(BaseHTTPRequestHandler):
    """HTTP request handler for timeline API endpoints."""

    # Class-level references set by factory
    board: Optional[UptimeBoard] = None
    palette: Optional[ColorPalette] = None
    subjects: List[SubjectConfig] = []
    fleet: bool = True
    uptime_source: Optional[Callable[[], Dict[str, float]]] = None

    def log_message(self, format: str, *args: Any) -> None:
        """Override to use Python logging instead of stderr."""
        logger.debug("API %s - %s", self.address_string(), format % args)

    def _send_json(self, code: int, data: Any) -> None:
        """Send a JSON response with the given status code."""
        body = json.dumps(data, indent=2).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)

    def _send_error_json(self, code: int, message: str) -> None:
        """Send a JSON error response."""
        self._send_json(code, {"error": message})

    def do_GET(self) -> None:
        """Handle GET requests."""
        path = urlparse(self.path).path
        try:
            if path == "/health":
                self._handle_health()
            elif path == "/colors":
                self._handle_colors()
            elif path == "/subjects":
                self._handle_subjects()
            elif path in ("/series", "/series/"):
                self._handle_fleet_series()
            elif path.startswith("/series/"):
                self._handle_subject_series(unquote(path[8:]))  # Extract id after /series/
            else:
                self._send_error_json(404, "Not found")
        except Exception as e:
            logger.exception("Error handling request: %s", e)
            self._send_error_json(500, "Internal server error")

    def _handle_health(self) -> None:
        """Handle GET /health endpoint."""
        self._send_json(200, {"status": "ok"})

    def _handle_colors(self) -> None:
        """Handle GET /colors endpoint."""
        palette = self.palette or ColorPalette()
        self._send_json(200, {"colors": palette.as_dict(), "fallback": palette.fallback})

    def _handle_subjects(self) -> None:
        """Handle GET /subjects endpoint."""
        if self.board is None:
            self._send_error_json(503, "Timeline not available")
            return

        backend_uptime = self.uptime_source() if self.uptime_source is not None else {}
        subjects = [
            _subject_to_dict(subject, self.board.render_series(subject.id), backend_uptime)
            for subject in self.subjects
        ]
        self._send_json(200, {"subjects": subjects, "fleet": self.fleet})

    def _handle_fleet_series(self) -> None:
        """Handle GET /series endpoint."""
        if self.board is None:
            self._send_error_json(503, "Timeline not available")
            return
        if not self.fleet:
            self._send_error_json(404, "Fleet timeline is disabled")
            return

        series = self.board.render_series(None)
        self._send_json(200, _series_to_dict(series, self.palette or ColorPalette()))

    def _handle_subject_series(self, subject_id: str) -> None:
        """Handle GET /series/<subject_id> endpoint."""
        if self.board is None:
            self._send_error_json(503, "Timeline not available")
            return

        known = {subject.id for subject in self.subjects}
        if subject_id not in known and subject_id not in self.board.subjects:
            self._send_error_json(404, f"Subject '{subject_id}' not found")
            return

        series = self.board.render_series(subject_id)
        self._send_json(200, _series_to_dict(series, self.palette or ColorPalette()))


def _create_handler_class(
    board: UptimeBoard,
    palette: ColorPalette,
    subjects: List[SubjectConfig],
    fleet: bool = True,
    uptime_source: Optional[Callable[[], Dict[str, float]]] = None,
) -> type:
    """Create a handler class with the board and settings bound."""

    class BoundTimelineHandler(TimelineHandler):
        pass

    BoundTimelineHandler.board = board
    BoundTimelineHandler.palette = palette
    BoundTimelineHandler.subjects = list(subjects)
    BoundTimelineHandler.fleet = fleet
    # staticmethod keeps a plain function from binding to the handler instance
    BoundTimelineHandler.uptime_source = staticmethod(uptime_source) if uptime_source is not None else None
    return BoundTimelineHandler


class ApiServer:
    """Serves the board's timelines over HTTP from a background thread.

    Each request is handled on its own thread, so a slow client never holds
    up the dashboard polling the other charts.
    """

    def __init__(
        self,
        config: ApiConfig,
        board: UptimeBoard,
        palette: Optional[ColorPalette] = None,
        subjects: Optional[List[SubjectConfig]] = None,
        fleet: bool = True,
        uptime_source: Optional[Callable[[], Dict[str, float]]] = None,
    ) -> None:
        """Initialize the API server.

        Args:
            config: API configuration.
            board: Board holding the rendered series.
            palette: State colors sent alongside each series.
            subjects: Configured subjects listed by /subjects.
            fleet: Whether the fleet-wide series is served at /series.
            uptime_source: Returns backend uptime ratios per container ID.
        """
        self.config = config
        self.board = board
        self.palette = palette or ColorPalette()
        self.subjects = subjects or []
        self.fleet = fleet
        self.uptime_source = uptime_source
        self._httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    def _bind(self) -> ThreadingHTTPServer:
        """Bind the listening socket, translating OS errors into ApiError."""
        handler_class = _create_handler_class(
            self.board,
            self.palette,
            self.subjects,
            self.fleet,
            self.uptime_source,
        )
        port = self.config.port
        try:
            return ThreadingHTTPServer(("", port), handler_class)
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise ApiError(f"Port {port} is already in use; is another clogsview instance running?")
            if e.errno == errno.EACCES:
                raise ApiError(f"Permission denied for port {port}; use a port >= 1024 or run as root")
            raise ApiError(f"Failed to start API server on port {port}: {e}")

    def start(self) -> None:
        """Start serving in a background thread.

        Raises:
            ApiError: If the port cannot be bound.
        """
        if self.is_running:
            logger.warning("API server is already running")
            return

        self._httpd = self._bind()
        self._httpd.daemon_threads = True
        self._thread = threading.Thread(
            target=self._httpd.serve_forever,
            kwargs={"poll_interval": 0.5},
            name="api-server",
            daemon=True,
        )
        self._thread.start()
        logger.info("API server listening on port %d", self.config.port)

    def stop(self) -> None:
        """Stop serving and release the port."""
        if self._httpd is None:
            return

        logger.info("Stopping API server...")
        # shutdown() blocks until serve_forever() has returned
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5.0)

        self._httpd = None
        self._thread = None
        logger.info("API server stopped")

    @property
    def is_running(self) -> bool:
        """Check if the server is running."""
        return self._thread is not None and self._thread.is_alive()
