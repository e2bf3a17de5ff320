"""Watchfile theme loader — fallback chain for the browser shell and assets.

User assets (``static/``) take priority.  When a file is not found in the
user directory, the bundled default theme fills the gap.

Thread Safety:
    All returned values are read-only paths.  Safe for free-threading.

"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from watchfile.config import WatchfileConfig

INDEX_FILE = "index.html"


def bundled_theme_path() -> Path:
    """Return the absolute path to the bundled default theme."""
    return Path(__file__).parent / "default"


def get_asset_dirs(config: WatchfileConfig) -> list[Path]:
    """Return static asset directories in priority order.

    Returns:
        ``[user_static_dir, bundled_default_assets]``

    The user directory is included even if it does not exist yet.

    """
    bundled = bundled_theme_path() / "assets"
    user_dir = config.static_path

    dirs: list[Path] = []
    if user_dir != bundled:
        dirs.append(user_dir)
    dirs.append(bundled)
    return dirs


def find_asset(config: WatchfileConfig, name: str) -> Path | None:
    """Return the first existing ``name`` along the asset fallback chain."""
    for asset_dir in get_asset_dirs(config):
        candidate = asset_dir / name
        if candidate.is_file():
            return candidate
    return None
