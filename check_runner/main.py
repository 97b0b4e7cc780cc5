"""Entry point for the check runner — `dcos-check-runner` console script.

  dcos-check-runner check <cluster|node-prestart|node-poststart> [names...] [--list]
  dcos-check-runner http-server [--host H] [--port P] [--systemd-socket] [--base-uri URI]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel

from check_runner import __version__
from check_runner.config import Settings, load_settings
from check_runner.errors import CheckNotFoundError, CheckRunnerError, ConfigError
from check_runner.runner import CombinedResult, Phase, Runner

logger = logging.getLogger("check_runner")

console = Console(stderr=True)

CHECK_TYPES = {phase.value: phase for phase in Phase}

# First file descriptor passed by systemd socket activation
SD_LISTEN_FDS_START = 3


# ── Helpers ──────────────────────────────────────────────────────────────────


def configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def build_runner(settings: Settings) -> Runner:
    """Create a runner for the configured role and load the check config."""
    runner = Runner(settings.role)
    runner.load_from_file(settings.check_config)
    return runner


def emit_output(result: CombinedResult) -> int:
    """Print the result as indented JSON and return the exit code."""
    print(result.to_json(indent=2))
    return result.status


def systemd_socket_fd() -> int:
    """Return the listening socket passed in by systemd socket activation."""
    try:
        listen_pid = int(os.environ.get("LISTEN_PID", ""))
        listen_fds = int(os.environ.get("LISTEN_FDS", ""))
    except ValueError:
        raise ConfigError("No systemd socket found")
    if listen_pid != os.getpid() or listen_fds == 0:
        raise ConfigError("No systemd socket found")
    if listen_fds != 1:
        raise ConfigError(f"Expected 1 systemd socket, found {listen_fds}")
    return SD_LISTEN_FDS_START


# ── Commands ─────────────────────────────────────────────────────────────────


def run_check(settings: Settings, check_type: str, names: list[str], list_only: bool) -> int:
    """Run (or list) one type of checks and print the result."""
    phase = CHECK_TYPES.get(check_type)
    if phase is None:
        logger.error("invalid check type %s", check_type)
        return 1

    runner = build_runner(settings)
    try:
        result = asyncio.run(runner.run(phase, list_only, *names))
    except CheckNotFoundError as e:
        logger.error("unable to execute %s checks: %s", check_type, e)
        return 1

    return emit_output(result)


def run_server(settings: Settings) -> None:
    """Start the check runner HTTP server."""
    from check_runner.api import create_app

    runner = build_runner(settings)
    app = create_app(runner, settings.base_uri)

    if settings.systemd_socket:
        fd = systemd_socket_fd()
        where = f"systemd socket (fd {fd})"
    else:
        fd = None
        where = f"{settings.host}:{settings.port}"

    console.print(
        Panel.fit(
            f"[bold]DC/OS Check Runner[/bold]\n"
            f"Listen:   {where}\n"
            f"Role:     {runner.role}\n"
            f"Base URI: {settings.base_uri or '/'}\n"
            f"Checks:   {settings.check_config}",
            title="dcos-check-runner",
            border_style="green",
        )
    )
    logger.info("Listening at %s", where)

    if fd is not None:
        uvicorn.run(app, fd=fd, log_level=settings.log_level.lower())
    else:
        uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


# ── CLI ──────────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    # Global flags are accepted before or after the sub-command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--check-config", default=argparse.SUPPRESS, help="Path to check configuration file")
    common.add_argument("--config", default=argparse.SUPPRESS, help="Runner settings file (YAML)")
    common.add_argument("--role", default=argparse.SUPPRESS, help="Set node role (master or agent)")
    common.add_argument("--verbose", action="store_true", default=argparse.SUPPRESS, help="Use verbose debug output")

    parser = argparse.ArgumentParser(
        prog="dcos-check-runner",
        description="dcos-check-runner provides CLI functionality to run checks on a DC/OS cluster.",
        parents=[common],
    )
    parser.add_argument("--version", action="store_true", help="Print dcos-check-runner version")
    sub = parser.add_subparsers(dest="command")

    check_parser = sub.add_parser(
        "check",
        parents=[common],
        help="Execute a DC/OS check",
        description="A DC/OS check can be one of the following types: cluster, node-prestart, node-poststart",
    )
    check_parser.add_argument("check_type", nargs="?", help="cluster | node-prestart | node-poststart")
    check_parser.add_argument("checks", nargs="*", help="Only run (or list) these checks")
    check_parser.add_argument("--list", dest="list_only", action="store_true", help="List checks instead of running them")

    server_parser = sub.add_parser("http-server", parents=[common], help="Start the check runner HTTP server")
    server_parser.add_argument("-a", "--host", default=None, help="Server's host")
    server_parser.add_argument("-p", "--port", type=int, default=None, help="Server's TCP port")
    server_parser.add_argument("--systemd-socket", action="store_true", default=None, help="Listen on systemd socket")
    server_parser.add_argument("--base-uri", default=None, help="Server's base URI")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"Version: {__version__}")
        sys.exit(0)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "check" and not args.check_type:
        parser.parse_args(["check", "--help"])

    try:
        settings = load_settings(
            getattr(args, "config", None),
            role=getattr(args, "role", None),
            check_config=getattr(args, "check_config", None),
            verbose=getattr(args, "verbose", None),
            host=getattr(args, "host", None),
            port=getattr(args, "port", None),
            systemd_socket=getattr(args, "systemd_socket", None),
            base_uri=getattr(args, "base_uri", None),
        )
    except ConfigError as e:
        logging.basicConfig(format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
        logger.error("Error loading config file: %s", e)
        sys.exit(1)

    configure_logging(settings)

    try:
        if args.command == "check":
            sys.exit(run_check(settings, args.check_type, args.checks, args.list_only))
        run_server(settings)
    except CheckRunnerError as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
