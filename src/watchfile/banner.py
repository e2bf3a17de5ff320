"""Startup banner — status output for ``watchfile serve``.

Prints the watched file, the URL to open and the stream endpoint.
Detects ``NO_COLOR`` / ``TERM`` for safe fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from watchfile.config import WatchfileConfig


# ---------------------------------------------------------------------------
# ANSI helpers — respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Return True if the terminal supports ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""


def _clickable_url(url: str) -> str:
    """Wrap *url* in an OSC 8 hyperlink escape if the terminal supports it."""
    if not _COLOR:
        return url
    return f"\033]8;;{url}\033\\{_BOLD}{_CYAN}{url}{_RESET}\033]8;;\033\\"


def print_banner(
    config: WatchfileConfig,
    *,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
) -> None:
    """Print the watchfile startup banner to stderr.

    Args:
        config: Resolved WatchfileConfig (must have a watch path).
        load_ms: Startup time in milliseconds.
        warnings: Optional list of warning messages to display.

    """
    from watchfile import __version__
    from watchfile.app import WATCH_ENDPOINT

    target = config.target_path
    warnings = list(warnings or [])
    if not target.exists():
        warnings.append(f"{target.name} does not exist yet; previews start once it is created")

    header = f"  {_BOLD}watchfile{_RESET} {_DIM}v{__version__}{_RESET}"
    timing = f" {_DIM}in {load_ms:.0f}ms{_RESET}" if load_ms > 0 else ""

    lines: list[str] = [
        "",
        header,
        f"  {_DIM}{'─' * 43}{_RESET}",
        f"  {_DIM}├─{_RESET} watching: {target}{timing}",
        f"  {_DIM}├─{_RESET} polling every {config.poll_interval_ms}ms",
        f"  {_DIM}├─{_RESET} {_GREEN}live{_RESET} — stream on {_DIM}{WATCH_ENDPOINT}{_RESET}",
        f"  {_DIM}└─{_RESET} static: {_DIM}{config.static_path}{_RESET}",
        "",
        f"  {_clickable_url(f'http://{config.host}:{config.port}')}",
    ]

    if warnings:
        lines.append("")
        lines.extend(f"  {_YELLOW}!{_RESET} {w}" for w in warnings)

    lines.append("")

    print("\n".join(lines), file=sys.stderr)
