"""Build transport profiles for connecting to the directory."""

from __future__ import annotations

from pathlib import Path

from structlog.stdlib import BoundLogger

from .config import Config
from .exceptions import ConfigError, MaterialLoadError
from .models.transport import MaterialLoad, TransportProfile

__all__ = [
    "build_transport_profile",
    "load_material",
]


def load_material(kind: str, path: Path) -> MaterialLoad:
    """Read a CA, certificate, or key file.

    Parameters
    ----------
    kind
        Kind of material (``ca``, ``cert``, or ``key``), for diagnostics.
    path
        Path to the file. Relative paths are resolved against the current
        working directory.

    Returns
    -------
    MaterialLoad
        The contents of the file, or a diagnostic explaining why it could
        not be read. This function never raises for an unreadable file.
    """
    path = path.expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    try:
        data = path.read_bytes()
    except OSError as e:
        reason = e.strerror or str(e)
        error = MaterialLoadError(kind, path, reason)
        return MaterialLoad(kind=kind, path=path, diagnostic=error)
    return MaterialLoad(kind=kind, path=path, data=data)


def build_transport_profile(
    config: Config, logger: BoundLogger
) -> TransportProfile:
    """Build the transport profile for a directory operation.

    Called before every directory operation so that rotated certificates
    are picked up without a restart. Unreadable material is logged and left
    out of the profile. If that breaks the TLS handshake, the connection
    will fail later and the caller will fall back as usual.

    Parameters
    ----------
    config
        Porthor configuration.
    logger
        Logger for diagnostics.

    Returns
    -------
    TransportProfile
        Profile for connecting to the directory.

    Raises
    ------
    ConfigError
        Raised if no directory URL is configured.
    """
    if not config.directory_url:
        raise ConfigError("Directory URL not configured")
    url = str(config.directory_url)
    logger = logger.bind(ldap_url=url)

    materials: dict[str, MaterialLoad | None] = {}
    for kind, path in (
        ("ca", config.ca_file),
        ("cert", config.client_cert_file),
        ("key", config.client_key_file),
    ):
        if not path:
            materials[kind] = None
            continue
        result = load_material(kind, path)
        if result.diagnostic:
            msg = f"Cannot load directory {kind} file, omitting it"
            logger.warning(
                msg, path=str(result.path), error=str(result.diagnostic)
            )
            materials[kind] = None
        else:
            logger.debug(f"Loaded directory {kind} file", path=str(path))
            materials[kind] = result

    if config.insecure:
        logger.warning(
            "Directory certificate verification disabled", tls_verify=False
        )
    else:
        logger.debug("Verifying directory certificate", tls_verify=True)

    return TransportProfile(
        url=url,
        bind_dn=config.bind_dn,
        bind_password=config.bind_password,
        ca=materials["ca"],
        client_cert=materials["cert"],
        client_key=materials["key"],
        insecure=config.insecure,
    )
