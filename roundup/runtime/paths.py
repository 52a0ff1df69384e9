"""Centralized path management for the roundup client.

This module provides a single source of truth for the paths the client
reads from, so settings resolve the same way regardless of which command
is running.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _get_project_root() -> Path:
    """Determine the project root directory.

    ROUNDUP_HOME wins; otherwise the current working directory is used.
    """
    home = os.environ.get("ROUNDUP_HOME")
    if home:
        return Path(home).expanduser()
    return Path.cwd()


@dataclass
class ProjectPaths:
    """Container for all project-related paths.

    All paths are computed relative to the project root.
    """

    root: Path = field(default_factory=_get_project_root)

    def __post_init__(self) -> None:
        # Ensure root is resolved to absolute path
        self.root = self.root.resolve()

    # --- Configuration paths ---
    @property
    def config(self) -> Path:
        """Configuration directory (config/)."""
        return self.root / "config"

    @property
    def service_config(self) -> Path:
        """Receipt service connection settings TOML file."""
        return self.config / "service.toml"


# Module-level singleton
_paths: ProjectPaths | None = None


def get_paths() -> ProjectPaths:
    """Get the singleton ProjectPaths instance.

    Returns:
        The global ProjectPaths instance.
    """
    global _paths
    if _paths is None:
        _paths = ProjectPaths()
    return _paths


def reset_paths() -> None:
    """Drop the cached singleton so the next get_paths() re-reads ROUNDUP_HOME."""
    global _paths
    _paths = None
