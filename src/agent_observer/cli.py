"""
CLI entry point for the agent observer.

Provides commands:
- serve: Run the status server
- status: Report on the server named by the lock file
"""

import argparse
import logging
import sys

import httpx

from .config import Settings
from .lockfile import read_lock_file


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def serve(args: argparse.Namespace) -> int:
    """Start the status server."""
    from .server import run_server

    settings = Settings()

    # Override settings from CLI args
    if args.host:
        settings.host = args.host
    if args.port is not None:
        settings.port = args.port
    if args.debounce_ms is not None:
        settings.waiting_debounce_ms = args.debounce_ms
    if args.cleanup_interval_ms is not None:
        settings.cleanup_interval_ms = args.cleanup_interval_ms
    if args.no_lock_file:
        settings.write_lock_file = False
    if args.log_level:
        settings.log_level = args.log_level

    _configure_logging(settings.log_level)
    logging.info(f"Starting agent observer on {settings.host}:{settings.port or 'ephemeral port'}")
    return run_server(settings)


def status(args: argparse.Namespace) -> int:
    """Print health of the server named by the lock file."""
    settings = Settings()
    _configure_logging(args.log_level or "WARNING")

    lock = read_lock_file(settings.lock_file)
    if lock is None:
        print("Agent observer is not running (no lock file)")
        return 1

    health_url = f"http://127.0.0.1:{lock.port}/api/health"
    try:
        response = httpx.get(health_url, timeout=2.0)
        response.raise_for_status()
        health = response.json()
    except (httpx.HTTPError, ValueError) as e:
        print(f"Agent observer not reachable on port {lock.port}: {e}")
        return 1

    print(f"Agent observer v{health.get('version')} on port {lock.port} (pid {lock.pid}, up {health.get('uptime')}s)")
    return 0


def main() -> int:
    """Main entry point for the agent-observer CLI."""
    parser = argparse.ArgumentParser(description="Agent Observer - real-time status server for coding agents")
    parser.add_argument("--log-level", type=str, help="Logging level (DEBUG, INFO, WARNING, ...)")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    serve_parser = subparsers.add_parser("serve", help="Start the status server")
    serve_parser.add_argument("--host", type=str, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (0 = ephemeral)")
    serve_parser.add_argument("--debounce-ms", type=int, help="Delay before announcing waiting_for_user")
    serve_parser.add_argument("--cleanup-interval-ms", type=int, help="Interval between staleness sweeps")
    serve_parser.add_argument("--no-lock-file", action="store_true", help="Do not write the lock file")

    _status_parser = subparsers.add_parser("status", help="Show whether a server is running")

    args = parser.parse_args()

    if args.command == "serve":
        return serve(args)
    elif args.command == "status":
        return status(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
