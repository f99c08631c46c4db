"""Test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from safir.logging import LogLevel, Profile, configure_logging

from porthor.config import Config
from porthor.constants import CONFIG_PATH_ENV
from porthor.factory import Factory

from .support.config import configure
from .support.ldap import MockLDAP, patch_ldap

_ENVIRONMENT = (
    CONFIG_PATH_ENV,
    "DIRECTORY_URL",
    "BIND_DN",
    "BIND_PASSWORD",
    "BASE_DN",
    "CA_FILE",
    "CLIENT_CERT_FILE",
    "CLIENT_KEY_FILE",
    "INSECURE",
    "UID_START",
    "UID_MAX",
    "GID_START",
    "GID_MAX",
    "HOMEDIR_BASE",
    "DEFAULT_SHELL",
    "DATA_DIR",
    "LOG_LEVEL",
    "LOG_PROFILE",
)
"""Environment variables read by the configuration."""


@pytest.fixture(autouse=True)
def environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove configuration settings inherited from the environment."""
    for name in _ENVIRONMENT:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def logging_setup() -> None:
    """Send JSON logs at debug level through the standard library."""
    configure_logging(
        name="porthor", profile=Profile.production, log_level=LogLevel.DEBUG
    )


@pytest.fixture
def config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Config:
    """Set up and return the default test configuration.

    No directory is configured, so everything goes to the local record store
    under the temporary directory of the test.
    """
    return configure("local", monkeypatch, data_dir=tmp_path)


@pytest.fixture
def directory_config(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Config:
    """Set up and return a test configuration with a directory."""
    return configure("directory", monkeypatch, data_dir=tmp_path)


@pytest.fixture
def factory(config: Config) -> Factory:
    """Return a component factory for the default configuration."""
    return Factory(config, structlog.get_logger("porthor"))


@pytest.fixture
def directory_factory(directory_config: Config) -> Factory:
    """Return a component factory using the mock directory."""
    return Factory(directory_config, structlog.get_logger("porthor"))


@pytest.fixture
def mock_ldap() -> Iterator[MockLDAP]:
    """Replace the ldap3 connection class with a mock class."""
    yield from patch_ldap()
