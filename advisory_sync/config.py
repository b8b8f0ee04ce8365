"""
Settings for the advisory sync engine.

Settings are read once at startup into an immutable SyncConfig that is
passed to every component. The source is an optional YAML file; every key
can also be overridden with an ADVISORY_SYNC_<KEY> environment variable.
Keys that are absent fall back to the defaults declared on SyncConfig.
"""
import dataclasses
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "ADVISORY_SYNC_"
DEFAULT_CONFIG_PATH = "/etc/advisory-sync/config.yaml"


@dataclass(frozen=True)
class SyncConfig:
    """
    Immutable sync settings.

    Paths are kept as strings so the dataclass stays hashable and easy to
    override from the environment; use the *_path properties for Path objects.
    """
    enabled: bool = True

    # Staging and store layout
    feed_dir: str = "/var/lib/advisory-sync/cert-data"
    store_name: str = "cert.duckdb"
    private_subdir: str = "private"
    credential_file: str = "/etc/advisory-sync/access-key"

    # Logging
    log_dir: str = "/var/log/advisory-sync"
    log_file: str = "advisory-sync.log"
    log_level: str = "INFO"
    syslog: bool = True

    # Mirror transport
    mirror_delete: bool = True
    port: int = 24
    proxy: str = ""
    transport_timeout: int = 600
    retry_attempts: int = 0
    retry_base_seconds: float = 5.0
    retry_max_seconds: float = 120.0

    # Feed branding
    feed_name: str = "Community CERT Advisory Feed"
    feed_vendor: str = "Advisory Sync Project"
    feed_home: str = "https://example.org/advisory-feed"

    # Optional Markdown run report
    report_dir: str = ""

    @property
    def feed_path(self) -> Path:
        return Path(self.feed_dir)

    @property
    def store_path(self) -> Path:
        return self.feed_path / self.store_name

    @property
    def private_path(self) -> Path:
        return self.feed_path / self.private_subdir

    @property
    def lock_path(self) -> Path:
        return self.private_path / "advisory-sync.lock"

    @property
    def last_sync_path(self) -> Path:
        return self.private_path / "last-sync"

    @property
    def transport_marker_path(self) -> Path:
        return self.private_path / "transport-incomplete"

    @property
    def feed_version_path(self) -> Path:
        return self.feed_path / "timestamp"

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir) / self.log_file

    def replace(self, **changes) -> "SyncConfig":
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)


def _coerce(name: str, value: Any, target: type) -> Any:
    """Convert a raw settings value to the type declared on SyncConfig."""
    if value is None:
        raise ConfigError(f"Setting '{name}' must not be empty")

    if target is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off"):
            return False
        raise ConfigError(f"Setting '{name}' is not a boolean: {value!r}")

    try:
        return target(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Setting '{name}' is not a valid {target.__name__}: {value!r}") from e


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None
) -> SyncConfig:
    """
    Build the SyncConfig for this run.

    Args:
        config_path: YAML settings file; a missing file means defaults
        environ: Environment to read overrides from (defaults to os.environ)

    Returns:
        Frozen SyncConfig

    Raises:
        ConfigError: If the file is unreadable, not a mapping, or has unknown keys
    """
    environ = os.environ if environ is None else environ
    types = {f.name: f.type if isinstance(f.type, type) else type(f.default) for f in fields(SyncConfig)}
    values: Dict[str, Any] = {}

    path = Path(config_path or DEFAULT_CONFIG_PATH)
    if path.exists():
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read settings file {path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")

        unknown = sorted(set(raw) - set(types))
        if unknown:
            raise ConfigError(f"Unknown settings in {path}: {', '.join(unknown)}")

        values.update(raw)
        logger.debug(f"Loaded settings from {path}")
    elif config_path:
        logger.warning(f"Settings file {path} not found, using defaults")

    for name in types:
        env_value = environ.get(ENV_PREFIX + name.upper())
        if env_value is not None:
            values[name] = env_value

    coerced = {name: _coerce(name, value, types[name]) for name, value in values.items()}
    return SyncConfig(**coerced)
