"""Models for directory transport security."""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from pathlib import Path

from ldap3 import Tls
from pydantic import SecretStr

from ..exceptions import MaterialLoadError

__all__ = [
    "MaterialLoad",
    "TransportProfile",
]


@dataclass(frozen=True, slots=True)
class MaterialLoad:
    """Result of reading a CA, certificate, or key file.

    Exactly one of ``data`` and ``diagnostic`` is set. A failed load is not
    an error for the caller: the material is simply left out of the
    transport profile.
    """

    kind: str
    """Kind of material (``ca``, ``cert``, or ``key``)."""

    path: Path
    """Absolute path of the file."""

    data: bytes | None = None
    """Contents of the file, if it could be read."""

    diagnostic: MaterialLoadError | None = None
    """Why the file could not be read, if it couldn't."""

    @property
    def ok(self) -> bool:
        """Whether the material was loaded."""
        return self.data is not None


@dataclass(frozen=True, slots=True)
class TransportProfile:
    """Everything needed to open a connection to the directory.

    Built fresh before every directory operation and never modified.
    """

    url: str
    """URL of the directory server."""

    bind_dn: str | None = None
    """DN for simple bind, if any."""

    bind_password: SecretStr | None = None
    """Password for simple bind, if any."""

    ca: MaterialLoad | None = None
    """Trusted CA certificates, if configured and readable."""

    client_cert: MaterialLoad | None = None
    """Client certificate, if configured and readable."""

    client_key: MaterialLoad | None = None
    """Client private key, if configured and readable."""

    insecure: bool = False
    """Whether server certificate verification is disabled."""

    def tls(self) -> Tls:
        """Build the ldap3 TLS configuration for this profile.

        Returns
        -------
        ldap3.Tls
            TLS settings. Certificate verification is required unless the
            profile is insecure. If no CA was loaded, the system trust store
            is used.
        """
        ca_data: str | bytes | None = None
        if self.ca and self.ca.data is not None:
            # PEM goes in as text, DER as raw bytes.
            if self.ca.data.lstrip().startswith(b"-----BEGIN"):
                ca_data = self.ca.data.decode()
            else:
                ca_data = self.ca.data
        cert_file = None
        key_file = None
        if self.client_cert and self.client_cert.ok:
            cert_file = str(self.client_cert.path)
        if self.client_key and self.client_key.ok:
            key_file = str(self.client_key.path)
        return Tls(
            validate=ssl.CERT_NONE if self.insecure else ssl.CERT_REQUIRED,
            ca_certs_data=ca_data,
            local_certificate_file=cert_file,
            local_private_key_file=key_file,
        )
