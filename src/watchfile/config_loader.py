"""Load WatchfileConfig from config.yaml (or watchfile.yaml / .toml) if present.

Merges file config with CLI kwargs. CLI overrides file.
"""

from __future__ import annotations

from pathlib import Path

from watchfile._errors import ConfigError
from watchfile.config import WatchfileConfig

_CONFIG_NAMES = ("config.yaml", "watchfile.yaml", "watchfile.yml", "watchfile.toml")

_KNOWN_KEYS = frozenset({
    "watch_path", "host", "port", "static_dir", "poll_interval_ms",
    "channel_capacity", "max_source_errors", "verbose",
})


def load_config(
    root: Path,
    config_file: Path | None = None,
    **overrides: object,
) -> WatchfileConfig:
    """Load WatchfileConfig from root, optionally merging a config file.

    An explicit ``config_file`` wins over discovery. Otherwise the first of
    ``config.yaml``, ``watchfile.yaml``, ``watchfile.yml``, ``watchfile.toml``
    found in root is used. Overrides that are None are ignored so CLI flags
    left unset don't clobber file values.

    Raises:
        ConfigError: If the config file is missing, unreadable or malformed.

    """
    root = root.resolve()
    if config_file is not None:
        path = config_file if config_file.is_absolute() else root / config_file
        if not path.is_file():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg)
        file_config = _read_file(path)
    else:
        file_config = _discover(root)

    merged = {**file_config, **{k: v for k, v in overrides.items() if v is not None}}
    if "watch_path" in merged and not isinstance(merged["watch_path"], Path):
        merged["watch_path"] = Path(str(merged["watch_path"]))
    try:
        return WatchfileConfig(root=root, **merged)  # type: ignore[arg-type]
    except TypeError as exc:
        msg = f"Invalid configuration: {exc}"
        raise ConfigError(msg) from exc


def _discover(root: Path) -> dict[str, object]:
    """Read the first config file found in root. Returns empty dict otherwise."""
    for name in _CONFIG_NAMES:
        path = root / name
        if path.is_file():
            return _read_file(path)
    return {}


def _read_file(path: Path) -> dict[str, object]:
    if path.suffix == ".toml":
        return _parse_toml(path)
    return _parse_yaml(path)


def _parse_yaml(path: Path) -> dict[str, object]:
    import yaml

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Unable to parse {path.name}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path.name} must contain a mapping at the top level"
        raise ConfigError(msg)
    return _flatten(data)


def _parse_toml(path: Path) -> dict[str, object]:
    import tomllib

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"Unable to parse {path.name}: {exc}"
        raise ConfigError(msg) from exc
    return _flatten(data)


def _flatten(data: dict[str, object]) -> dict[str, object]:
    """Collapse the ``server`` and ``watchfile`` sections into top-level keys.

    ``server.address`` is accepted as an alias for ``host``.
    """
    result: dict[str, object] = {}

    server = data.get("server")
    if isinstance(server, dict):
        if "address" in server:
            result["host"] = server["address"]
        for k in ("host", "port"):
            if k in server:
                result[k] = server[k]

    section = data.get("watchfile")
    if isinstance(section, dict):
        result.update({k: v for k, v in section.items() if k in _KNOWN_KEYS})

    for k, v in data.items():
        if k in _KNOWN_KEYS:
            result[k] = v
    return result
