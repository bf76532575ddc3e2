import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from pybatis.exceptions import ConfigurationException

ENV_PREFIX = "PYBATIS_"
PROFILE_ENV_VAR = "PYBATIS_PROFILE"
DEFAULTS_SOURCE = "default configuration"

_DEFAULTS_PATH = Path(__file__).parent / "defaults.yml"


class ConfigurationProperties:
    """
    Layered configuration.

    Sources, lowest precedence first:
        1. defaults.yml shipped with pybatis
        2. application.yml in the working directory
        3. application-{profile}.yml in the working directory

    Environment variables (PYBATIS_DATABASE_URL for "database.url") are used
    only for keys that no file defines. The source of every key is tracked.
    """

    def __init__(
        self, profile: Optional[str] = None, config_dir: Optional[str] = None
    ):
        self.profile = profile or os.environ.get(PROFILE_ENV_VAR) or None
        self._config_dir = Path(config_dir) if config_dir else Path.cwd()
        self._values: Dict[str, Any] = {}
        self._sources: Dict[str, str] = {}

        self._load_file(_DEFAULTS_PATH, DEFAULTS_SOURCE)
        self._load_file(self._config_dir / "application.yml", "application.yml")
        if self.profile:
            profile_file = f"application-{self.profile}.yml"
            self._load_file(self._config_dir / profile_file, profile_file)

    def _load_file(self, path: Path, source: str):
        if not path.exists():
            return

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationException(
                f"{path} must contain a mapping at the top level"
            )

        for key, value in _flatten(data).items():
            self._values[key] = value
            self._sources[key] = source

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dotted key, falling back to PYBATIS_* variables."""
        if key in self._values:
            return self._values[key]

        # A section key ("database.pool") returns the nested mapping
        prefix = f"{key}."
        section = {
            k[len(prefix) :]: v for k, v in self._values.items() if k.startswith(prefix)
        }
        if section:
            return _unflatten(section)

        env_name = ENV_PREFIX + key.upper().replace(".", "_")
        if env_name in os.environ:
            self._sources[key] = f"environment variable ({env_name})"
            return os.environ[env_name]

        return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "on")
        return bool(value)

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get(key, default)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationException(
                f"'{key}' must be an integer, got {value!r}"
            ) from e

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        value = self.get(key, default)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationException(
                f"'{key}' must be a number, got {value!r}"
            ) from e

    def get_list(self, key: str, default: Optional[List[Any]] = None) -> List[Any]:
        value = self.get(key, default)
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return list(value)

    def get_config_sources(self) -> Dict[str, str]:
        """Map of key -> source name, sorted by key."""
        return dict(sorted(self._sources.items()))


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict) and value:
            flat.update(_flatten(value, f"{full_key}."))
        else:
            flat[full_key] = value
    return flat


def _unflatten(flat: Dict[str, Any]) -> Dict[str, Any]:
    nested: Dict[str, Any] = {}
    for key, value in flat.items():
        target = nested
        parts = key.split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value
    return nested


def log_config_sources(config: ConfigurationProperties, logger, max_cols: int = 3):
    """
    Log configuration keys grouped by source, as boxed tables.

    Args:
        config: Configuration to describe
        logger: Anything with an info(msg) method
        max_cols: Keys per table row
    """
    by_source: Dict[str, List[str]] = {}
    for key, source in config.get_config_sources().items():
        by_source.setdefault(source, []).append(key)

    logger.info("Configuration sources:")

    for source, keys in by_source.items():
        logger.info(f"[{source}]")
        width = max(len(key) for key in keys)
        cols = max(1, max_cols)
        rows = [keys[i : i + cols] for i in range(0, len(keys), cols)]
        inner = cols * (width + 2) + (cols - 1)

        logger.info("┌" + "─" * inner + "┐")
        for row in rows:
            cells = [f" {key.ljust(width)} " for key in row]
            cells += [" " * (width + 2)] * (cols - len(row))
            logger.info("│" + " ".join(cells) + "│")
        logger.info("└" + "─" * inner + "┘")


_config: Optional[ConfigurationProperties] = None


def get_config() -> ConfigurationProperties:
    """Process-wide configuration, loaded on first use."""
    global _config
    if _config is None:
        _config = ConfigurationProperties()
    return _config


def reload_config(profile: Optional[str] = None) -> ConfigurationProperties:
    global _config
    _config = ConfigurationProperties(profile=profile)
    return _config
