"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from mori.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def isolated_mori_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep settings, keys and logs out of the real home directory."""
    for name in list(os.environ):
        if name.startswith("MORI_"):
            monkeypatch.delenv(name, raising=False)
    home = tmp_path / "mori-home"
    monkeypatch.setenv("MORI_HOME", str(home))
    monkeypatch.setenv("MORI_LOG_DIR", str(home / "logs"))
    monkeypatch.setattr(logging_utils, "_STATE", None)
    return home
