"""clogsview - Uptime heartbeat timelines for clogs-monitored containers."""

import argparse
import json
import logging
import signal
import sys
from threading import Event
from typing import Optional

__version__ = "0.1.0"

# Global shutdown event for signal handlers
_shutdown_event: Optional[Event] = None

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _handle_shutdown(signum: int, frame: object) -> None:
    """Signal handler for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating shutdown...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the run command - start clock, poller and API server."""
    global _shutdown_event

    _setup_logging(args.verbose)

    logger.info("clogsview %s starting...", __version__)

    # Import here to avoid circular imports and allow logging setup first
    from .api import ApiError, ApiServer
    from .board import UptimeBoard
    from .client import BackendClient
    from .clock import Clock
    from .colors import ColorPalette
    from .config import ConfigError, load_config
    from .poller import Poller

    # 1. Load configuration
    try:
        config = load_config(args.config)
        logger.info("Configuration loaded from %s", args.config)
        logger.info(
            "Charting %d subject(s), %gs buckets over the last %gs (up to %d bars each)",
            len(config.subject_ids),
            config.timeline.bucket_width_seconds,
            config.timeline.lookback_seconds,
            config.timeline.max_buckets,
        )
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    # 2. Setup shutdown handler
    _shutdown_event = Event()
    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    # 3. Wire components
    client = BackendClient(config.backend)
    if not client.check_health():
        logger.warning("Backend at %s is not answering yet, will keep polling", config.backend.url)

    clock = Clock(config.timeline.tick_interval_seconds)
    board = UptimeBoard(config.timeline, now=clock.now)
    clock.subscribe(board.on_tick)
    poller = Poller(config, client, board)
    api_server: Optional[ApiServer] = None

    try:
        clock.start()
        poller.start()

        if config.api.enabled:
            try:
                api_server = ApiServer(
                    config.api,
                    board,
                    palette=ColorPalette(config.colors),
                    subjects=config.subjects,
                    fleet=config.fleet,
                    uptime_source=lambda: poller.uptime,
                )
                api_server.start()
            except ApiError as e:
                logger.error("Failed to start API server: %s", e)
                logger.warning("Continuing without API server")
                api_server = None

        logger.info("All components started, waiting for shutdown signal...")

        # 4. Wait for shutdown signal
        _shutdown_event.wait()

    except KeyboardInterrupt:
        # Backup handler if signal doesn't work
        logger.info("Keyboard interrupt received")
    finally:
        # 5. Cleanup - stop all components
        logger.info("Shutting down components...")

        poller.stop()
        clock.stop()

        if api_server is not None:
            api_server.stop()

        logger.info("Shutdown complete")


def _cmd_render(args: argparse.Namespace) -> None:
    """Execute the render command - print one timeline as JSON."""
    from .client import BackendClient, ClientError
    from .clock import Clock
    from .colors import ColorPalette
    from .config import ConfigError, load_config
    from .timeline import TimelineError, compute_series

    # 1. Load configuration
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    # 2. Fetch the subject's intervals once
    client = BackendClient(config.backend)
    try:
        intervals = client.fetch_intervals(args.subject)
    except ClientError as e:
        print(f"Error: {e}")
        sys.exit(1)

    # 3. Compute the series at the current time
    clock = Clock(config.timeline.tick_interval_seconds)
    now = clock.tick()
    try:
        series = compute_series(
            intervals,
            bucket_width=config.timeline.bucket_width_seconds,
            lookback_seconds=config.timeline.lookback_seconds,
            now=now,
            subject_id=args.subject,
        )
    except TimelineError as e:
        print(f"Error: {e}")
        sys.exit(1)

    palette = ColorPalette(config.colors)
    print(json.dumps(series.to_dict(palette.for_channels(series.channels)), indent=2))


def main() -> None:
    """Main entry point for the clogsview package."""
    parser = argparse.ArgumentParser(
        description="clogsview - Uptime heartbeat timelines for clogs-monitored containers"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"clogsview {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Run subcommand (default behavior)
    run_parser = subparsers.add_parser(
        "run",
        help="Start polling and serve timelines (default)",
    )
    run_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    run_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    run_parser.set_defaults(func=_cmd_run)

    # Render subcommand
    render_parser = subparsers.add_parser(
        "render",
        help="Fetch and print one timeline as JSON",
    )
    render_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    render_parser.add_argument(
        "--subject",
        default=None,
        help="Container ID to render (default: the whole fleet)",
    )
    render_parser.set_defaults(func=_cmd_render)

    args = parser.parse_args()

    # Default to 'run' if no command specified
    if args.command is None:
        args.config = "config.yaml"
        args.verbose = False
        args.func = _cmd_run

    args.func(args)
