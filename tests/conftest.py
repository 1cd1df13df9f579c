"""Shared pytest fixtures for the mailforge test suite."""

from __future__ import annotations

# Disable Rich colors and force wide terminal BEFORE any imports
# Rich checks these at import time
import os

os.environ["NO_COLOR"] = "1"
os.environ["TERM"] = "dumb"
os.environ["FORCE_COLOR"] = "0"
os.environ["COLUMNS"] = "200"

import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

# Import private internals for testing purposes
import mailforge.config.loader as _cfg_loader
from mailforge.config import clear_config
from mailforge.mail import MessageComposer

# pylint: disable=redefined-outer-name


@pytest.fixture(autouse=True)
def _isolate_global_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep the config cache and the ``mailforge`` logger clean between tests."""
    monkeypatch.delenv("MAILFORGE_CONFIG", raising=False)
    clear_config()
    yield
    clear_config()
    _cfg_loader._default_loader.filename = _cfg_loader.DEFAULT_CONFIG_FILENAME  # pylint: disable=protected-access
    root = logging.getLogger("mailforge")
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    root.propagate = True


@pytest.fixture
def cfg_loader() -> Any:
    """Expose config.loader module for testing private helpers."""
    return _cfg_loader


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a config file into the temporary directory and return its path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write



@pytest.fixture
def composer() -> MessageComposer:
    """Provide a composer whose session points at localhost."""
    mail = MessageComposer()
    mail.session.set_host_name("localhost")
    return mail
