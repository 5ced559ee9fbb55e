"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys

from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import pytest


if TYPE_CHECKING:
    from collections.abc import Generator


# Add ailogin to path for imports
ailogin_path = Path(__file__).parent.parent / "ailogin"
if str(ailogin_path.parent) not in sys.path:
    sys.path.insert(0, str(ailogin_path.parent))

from tests.helpers import FakeEndpoints  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_settings(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    """Keep user config files and AILOGIN_* variables out of every test."""
    from ailogin.config import clear_settings

    for key in list(os.environ):
        if key.startswith("AILOGIN"):
            monkeypatch.delenv(key, raising=False)
    home = tmp_path / "home"
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("APPDATA", str(home))
    monkeypatch.setenv("AILOGIN_STORE__PATH", str(tmp_path / "store" / "oauth.json"))
    monkeypatch.chdir(tmp_path)
    clear_settings()
    yield
    clear_settings()


@pytest.fixture
def endpoints() -> FakeEndpoints:
    """Canned provider endpoints."""
    return FakeEndpoints()


@pytest.fixture
def http_client(endpoints: FakeEndpoints) -> httpx.AsyncClient:
    """An httpx client whose transport is ``endpoints``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(endpoints))


@pytest.fixture
def fast_timeouts():
    """Short timeouts so failure paths finish quickly."""
    from ailogin.config import TimeoutSettings

    return TimeoutSettings(authorize=5.0, exchange=5.0, refresh=2.0, profile=2.0)
