"""Watchfile configuration.

WatchfileConfig is the central configuration object, frozen after creation.
"""

from dataclasses import dataclass, field
from pathlib import Path

from watchfile._errors import ConfigError


@dataclass(frozen=True, slots=True)
class WatchfileConfig:
    """Configuration for a watchfile server.

    Attributes:
        root: Directory that relative paths are resolved against.
              Always resolved to an absolute path on construction.
        watch_path: The markdown file to preview (relative to ``root`` or absolute).
        host: Bind address.
        port: Bind port.
        static_dir: Directory with user static assets (overrides the bundled theme).
        poll_interval_ms: Filesystem polling interval for each connection's watch.
        channel_capacity: Pending change events buffered per connection before
            the watch subscription is made to wait.
        max_source_errors: Consecutive watch-subscription failures tolerated
            before a connection's loop is ended.
        verbose: Print per-push timing lines to stderr.

    """

    root: Path = field(default_factory=Path.cwd)
    watch_path: Path | None = None
    host: str = "127.0.0.1"
    port: int = 8080
    static_dir: str = "static"
    poll_interval_ms: int = 1000
    channel_capacity: int = 16
    max_source_errors: int = 3
    verbose: bool = True

    def __post_init__(self) -> None:
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())
        if self.watch_path is not None and not isinstance(self.watch_path, Path):
            object.__setattr__(self, "watch_path", Path(str(self.watch_path)))

        if not 0 <= self.port <= 65535:
            msg = f"port must be between 0 and 65535, got {self.port}"
            raise ConfigError(msg)
        if self.poll_interval_ms <= 0:
            msg = f"poll_interval_ms must be positive, got {self.poll_interval_ms}"
            raise ConfigError(msg)
        if self.channel_capacity <= 0:
            msg = f"channel_capacity must be positive, got {self.channel_capacity}"
            raise ConfigError(msg)
        if self.max_source_errors <= 0:
            msg = f"max_source_errors must be positive, got {self.max_source_errors}"
            raise ConfigError(msg)

    @property
    def target_path(self) -> Path:
        """Absolute path of the watched file.

        Raises:
            ConfigError: If no watch path was configured.

        """
        if self.watch_path is None:
            msg = "No file to watch: set watch_path in config.yaml or pass a path"
            raise ConfigError(msg)
        if self.watch_path.is_absolute():
            return self.watch_path
        return self.root / self.watch_path

    @property
    def static_path(self) -> Path:
        """Absolute path to the user static assets directory."""
        return self.root / self.static_dir
