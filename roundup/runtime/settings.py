"""Runtime loader for receipt service connection settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from roundup.runtime.logging import get_logger
from roundup.runtime.paths import get_paths

logger = get_logger(__name__)

DEFAULT_SERVICE_URL = "http://localhost:54321/functions/v1"
DEFAULT_TIMEOUT = 60.0


class SettingsError(ValueError):
    """Raised when a settings value cannot be interpreted."""


@dataclass(frozen=True)
class ServiceSettings:
    """Where the receipt functions live and how long to wait for them."""

    base_url: str = DEFAULT_SERVICE_URL
    api_key: str | None = None
    timeout: float = DEFAULT_TIMEOUT


def _load_toml(path: Path) -> dict[str, Any]:
    """Load TOML file and return parsed dict; missing files map to empty dict."""
    import tomllib

    if not path.exists():
        return {}

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def _coerce_timeout(value: object, source: str) -> float:
    try:
        timeout = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"Invalid timeout {value!r} in {source}") from exc
    if timeout <= 0:
        raise SettingsError(f"Timeout must be positive in {source}, got {timeout}")
    return timeout


def load_service_settings(config_path: str | Path | None = None) -> ServiceSettings:
    """
    Resolve service settings: defaults, then service.toml, then environment.

    Args:
        config_path: Optional TOML path override. If None, uses default project path.

    Returns:
        Frozen ServiceSettings.
    """
    path = Path(config_path) if config_path is not None else get_paths().service_config
    settings = ServiceSettings()

    table = _load_toml(path).get("service", {})
    if table:
        logger.debug("Loaded service settings from %s", path)
        if "url" in table:
            settings = replace(settings, base_url=str(table["url"]))
        if table.get("api_key"):
            settings = replace(settings, api_key=str(table["api_key"]))
        if "timeout" in table:
            settings = replace(settings, timeout=_coerce_timeout(table["timeout"], str(path)))

    env_url = os.environ.get("ROUNDUP_SERVICE_URL")
    if env_url:
        settings = replace(settings, base_url=env_url.strip())
    env_key = os.environ.get("ROUNDUP_API_KEY")
    if env_key:
        settings = replace(settings, api_key=env_key.strip())
    env_timeout = os.environ.get("ROUNDUP_TIMEOUT")
    if env_timeout:
        settings = replace(settings, timeout=_coerce_timeout(env_timeout, "ROUNDUP_TIMEOUT"))

    return settings
