"""Vigil CLI — vigil serve / vigil check / vigil watch.

Entry point for the ``vigil`` command-line interface.
"""

from __future__ import annotations

import argparse
import sys


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the vigil CLI."""
    parser = argparse.ArgumentParser(
        prog="vigil",
        description="Live access-log and alert relay for monitoring dashboards.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # vigil serve
    serve_parser = subparsers.add_parser("serve", help="Run the relay HTTP server")
    serve_parser.add_argument("root", nargs="?", default=".", help="Config root directory")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")
    serve_parser.add_argument("--workers", type=int, default=None, help="Worker count")
    serve_parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")

    # vigil check
    check_parser = subparsers.add_parser(
        "check",
        help="Report missing connection settings",
    )
    check_parser.add_argument("root", nargs="?", default=".", help="Config root directory")

    # vigil watch
    watch_parser = subparsers.add_parser(
        "watch",
        help="Listen in-process and print one stream's rows as they change",
    )
    watch_parser.add_argument("root", nargs="?", default=".", help="Config root directory")
    watch_parser.add_argument(
        "--stream", choices=("logs", "alerts"), default="logs", help="Stream to follow",
    )
    watch_parser.add_argument("--rows", type=int, default=10, help="Rows to keep on screen")

    return parser


def _get_version() -> str:
    from vigil import __version__

    return __version__


def _check(root: str) -> int:
    """Print configuration status; return the process exit code."""
    from pathlib import Path

    from vigil._errors import ConfigError
    from vigil.config_loader import load_config

    try:
        config = load_config(Path(root))
    except ConfigError as exc:
        print(f"config error: {exc}", file=sys.stderr)
        return 1

    missing = config.missing_connection_settings()
    if missing:
        print("missing settings:", file=sys.stderr)
        for name in missing:
            print(f"  {name}", file=sys.stderr)
        return 1

    ca_file = config.ssl_ca_file
    if ca_file is None or not ca_file.is_file():
        print(f"CA certificate not found: {ca_file}", file=sys.stderr)
        return 1

    channels = ", ".join(f"{c.value}={n}" for c, n in config.channel_names().items())
    print(f"ok: {config.pg_host}:{config.pg_port}/{config.pg_database} [{channels}]")
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "serve":
        from vigil.app import serve

        serve(
            root=args.root,
            host=args.host,
            port=args.port,
            workers=args.workers,
            log_level=args.log_level,
        )
    elif args.command == "check":
        sys.exit(_check(args.root))
    elif args.command == "watch":
        from vigil.watch import run_watch

        sys.exit(run_watch(args.root, stream=args.stream, rows=args.rows))


if __name__ == "__main__":
    main()
