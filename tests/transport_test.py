"""Tests for building directory transport profiles."""

from __future__ import annotations

import ssl
from pathlib import Path

import pytest
import structlog
from safir.testing.logging import parse_log_tuples

from porthor.config import Config
from porthor.exceptions import ConfigError, MaterialLoadError
from porthor.transport import build_transport_profile, load_material


PEM_DATA = b"-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


def test_load_material(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "ca.pem"
    path.write_bytes(PEM_DATA)
    result = load_material("ca", path)
    assert result.ok
    assert result.data == PEM_DATA
    assert result.diagnostic is None

    monkeypatch.chdir(tmp_path)
    result = load_material("ca", Path("ca.pem"))
    assert result.ok
    assert result.path == tmp_path / "ca.pem"

    result = load_material("key", tmp_path / "missing.key")
    assert not result.ok
    assert result.data is None
    assert isinstance(result.diagnostic, MaterialLoadError)
    assert result.diagnostic.kind == "key"
    assert "missing.key" in str(result.diagnostic)


def test_no_url(config: Config) -> None:
    logger = structlog.get_logger("porthor")
    with pytest.raises(ConfigError):
        build_transport_profile(config, logger)


def test_profile(
    directory_config: Config,
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    logger = structlog.get_logger("porthor")
    ca_path = tmp_path / "ca.pem"
    ca_path.write_bytes(PEM_DATA)
    cert_path = tmp_path / "client.pem"
    cert_path.write_bytes(PEM_DATA)
    config = directory_config.model_copy(
        update={
            "ca_file": ca_path,
            "client_cert_file": cert_path,
            "client_key_file": tmp_path / "missing.key",
        }
    )

    caplog.clear()
    profile = build_transport_profile(config, logger)
    assert profile.url == "ldap://ldap.example.com/"
    assert profile.bind_dn == "cn=admin,dc=example,dc=com"
    assert profile.ca
    assert profile.ca.data == PEM_DATA
    assert profile.client_cert
    assert profile.client_cert.path == cert_path
    assert profile.client_key is None
    assert not profile.insecure

    tls = profile.tls()
    assert tls.validate == ssl.CERT_REQUIRED
    assert tls.ca_certs_data == PEM_DATA.decode()
    assert tls.certificate_file == str(cert_path)
    assert tls.private_key_file is None

    log = parse_log_tuples("porthor", caplog.record_tuples)
    messages = [m for m in log if m["severity"] == "warning"]
    assert messages == [
        {
            "error": messages[0]["error"],
            "event": "Cannot load directory key file, omitting it",
            "ldap_url": "ldap://ldap.example.com/",
            "path": str(tmp_path / "missing.key"),
            "severity": "warning",
        }
    ]
    assert "missing.key" in messages[0]["error"]


def test_profile_der(directory_config: Config, tmp_path: Path) -> None:
    logger = structlog.get_logger("porthor")
    ca_path = tmp_path / "ca.der"
    ca_path.write_bytes(b"\x30\x82\x01\x0a")
    config = directory_config.model_copy(update={"ca_file": ca_path})

    profile = build_transport_profile(config, logger)
    assert profile.tls().ca_certs_data == b"\x30\x82\x01\x0a"


def test_insecure(
    directory_config: Config, caplog: pytest.LogCaptureFixture
) -> None:
    logger = structlog.get_logger("porthor")
    config = directory_config.model_copy(update={"insecure": True})

    caplog.clear()
    profile = build_transport_profile(config, logger)
    assert profile.insecure
    assert profile.ca is None
    assert profile.tls().validate == ssl.CERT_NONE
    assert parse_log_tuples("porthor", caplog.record_tuples) == [
        {
            "event": "Directory certificate verification disabled",
            "ldap_url": "ldap://ldap.example.com/",
            "severity": "warning",
            "tls_verify": False,
        }
    ]


def test_secure(
    directory_config: Config, caplog: pytest.LogCaptureFixture
) -> None:
    logger = structlog.get_logger("porthor")

    caplog.clear()
    profile = build_transport_profile(directory_config, logger)
    assert profile.tls().validate == ssl.CERT_REQUIRED
    assert parse_log_tuples("porthor", caplog.record_tuples) == [
        {
            "event": "Verifying directory certificate",
            "ldap_url": "ldap://ldap.example.com/",
            "severity": "debug",
            "tls_verify": True,
        }
    ]
