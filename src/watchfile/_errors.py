"""Watchfile error hierarchy.

All watchfile-specific errors inherit from WatchfileError for easy catching.
"""


class WatchfileError(Exception):
    """Base error for all watchfile operations."""


class ConfigError(WatchfileError):
    """Invalid or missing configuration."""


class RenderError(WatchfileError):
    """Markdown could not be rendered; the payload for this change is dropped."""


class NotificationSourceError(WatchfileError):
    """The filesystem-watch subscription kept failing and was abandoned."""


class SessionClosed(WatchfileError):
    """The client connection is gone; nothing more can be delivered."""
