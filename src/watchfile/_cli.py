"""Watchfile CLI — watchfile serve / watchfile render.

Entry point for the ``watchfile`` command-line interface.
"""

from __future__ import annotations

import argparse
import sys


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the watchfile CLI."""
    parser = argparse.ArgumentParser(
        prog="watchfile",
        description="Live markdown preview: edit a file, watch the browser follow.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # watchfile serve
    serve_parser = subparsers.add_parser(
        "serve",
        help="Start the live preview server",
    )
    serve_parser.add_argument(
        "path", nargs="?", default=None,
        help="Markdown file to watch (overrides watch_path from the config file)",
    )
    serve_parser.add_argument("--root", default=".", help="Directory holding config.yaml")
    serve_parser.add_argument("--config", default=None, help="Explicit config file")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")
    serve_parser.add_argument(
        "--poll-interval", type=int, default=None, help="Polling interval in milliseconds",
    )
    serve_parser.add_argument(
        "--quiet", action="store_true", help="Don't print a timing line per push",
    )

    # watchfile render
    render_parser = subparsers.add_parser(
        "render",
        help="Render a markdown file to HTML once",
    )
    render_parser.add_argument("path", help="Markdown file to render")
    render_parser.add_argument("-o", "--output", default=None, help="Write HTML here")

    return parser


def _get_version() -> str:
    """Get the package version."""
    from watchfile import __version__

    return __version__


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from watchfile._errors import WatchfileError

    try:
        if args.command == "serve":
            from watchfile.app import serve

            serve(
                root=args.root,
                config_file=args.config,
                watch_path=args.path,
                host=args.host,
                port=args.port,
                poll_interval_ms=args.poll_interval,
                verbose=False if args.quiet else None,
            )
        elif args.command == "render":
            from watchfile.app import render_file

            html = render_file(args.path, args.output)
            if args.output is None:
                sys.stdout.write(html)
    except (WatchfileError, OSError) as exc:
        print(f"watchfile: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
