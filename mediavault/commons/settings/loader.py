"""Settings loader with layered JSON + environment configuration."""

import json
import os
from pathlib import Path
from typing import Any

from mediavault.commons.settings.models import Settings

ENV_PREFIX = "MEDIAVAULT__"


class SettingsLoader:
    """Builds a Settings instance from layered sources.

    Later layers win:
    1. config/appsettings.json
    2. config/appsettings.{environment}.json
    3. MEDIAVAULT__* environment variables
    """

    def __init__(
        self,
        config_dir: Path | None = None,
        environment: str | None = None,
    ) -> None:
        """Initialize the settings loader.

        Args:
            config_dir: Directory holding the JSON files. Defaults to
                MEDIAVAULT_CONFIG_DIR or ./config.
            environment: Environment name. Defaults to
                MEDIAVAULT__APP__ENVIRONMENT or 'dev'.
        """
        self.config_dir = config_dir or Path(
            os.getenv("MEDIAVAULT_CONFIG_DIR", "config")
        )
        self.environment = environment or os.getenv(
            f"{ENV_PREFIX}APP__ENVIRONMENT", "dev"
        )

    def load(self) -> Settings:
        """Resolve every layer and validate the result."""
        layers = [
            self._read_json("appsettings.json"),
            self._read_json(f"appsettings.{self.environment}.json"),
            self._env_overrides(),
        ]
        merged: dict[str, Any] = {}
        for layer in layers:
            merged = merge_dicts(merged, layer)
        return Settings(**merged)

    def _read_json(self, filename: str) -> dict[str, Any]:
        path = self.config_dir / filename
        if not path.is_file():
            return {}
        with path.open(encoding="utf-8") as f:
            return dict(json.load(f))

    def _env_overrides(self) -> dict[str, Any]:
        """Turn MEDIAVAULT__BACKUP__MIN_BACKUP_COPIES=3 into nested dicts."""
        overrides: dict[str, Any] = {}
        for key, raw in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue
            *parents, leaf = key[len(ENV_PREFIX) :].lower().split("__")
            node = overrides
            for part in parents:
                node = node.setdefault(part, {})
            node[leaf] = parse_env_value(raw)
        return overrides


def parse_env_value(raw: str) -> Any:
    """Best-effort typing of an environment variable value.

    Args:
        raw: Raw string from the environment.

    Returns:
        bool, int, float, decoded JSON list/object, or the original string.
    """
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    if raw.lstrip().startswith(("[", "{")):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw
    return raw


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_dicts(current, value)
        else:
            merged[key] = value
    return merged


_settings: Settings | None = None


def get_settings(
    config_dir: Path | None = None,
    environment: str | None = None,
    *,
    reload: bool = False,
) -> Settings:
    """Return the cached process settings, loading them on first use.

    Args:
        config_dir: Optional config directory override.
        environment: Optional environment override.
        reload: Force a reload from files and environment.
    """
    global _settings  # noqa: PLW0603
    if _settings is None or reload:
        _settings = SettingsLoader(config_dir=config_dir, environment=environment).load()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings. Used by tests."""
    global _settings  # noqa: PLW0603
    _settings = None
