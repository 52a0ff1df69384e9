"""Shared pytest fixtures for roundup tests."""

from __future__ import annotations

import pytest
from _pytest.monkeypatch import MonkeyPatch

from roundup.runtime import reset_paths

_ENV_VARS = ("ROUNDUP_HOME", "ROUNDUP_SERVICE_URL", "ROUNDUP_API_KEY", "ROUNDUP_TIMEOUT")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: MonkeyPatch, tmp_path):
    """Point ROUNDUP_HOME at an empty directory and clear service overrides."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ROUNDUP_HOME", str(tmp_path))
    reset_paths()
    yield tmp_path
    reset_paths()
