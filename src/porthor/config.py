"""Configuration for Porthor.

Porthor is configured by environment variables, optionally combined with a
YAML file named by the ``PORTHOR_CONFIG_PATH`` environment variable (or the
``--config-path`` command-line option). Keys in the YAML file are the
camel-case forms of the setting names. Environment variables always take
precedence over the file, so secrets such as the bind password can be
injected separately.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Annotated, Any, Self

import yaml
from pydantic import (
    AliasChoices,
    Field,
    SecretStr,
    UrlConstraints,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import Url
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from safir.logging import LogLevel, Profile, configure_logging
from typing_extensions import override

from .constants import (
    CONFIG_PATH_ENV,
    DEFAULT_BASE_DN,
    DEFAULT_HOMEDIR_BASE,
    DEFAULT_ID_MAX,
    DEFAULT_ID_START,
    DEFAULT_SHELL,
)
from .models.identity import AllocationRange

LdapDsn = Annotated[
    Url, UrlConstraints(allowed_schemes=["ldap", "ldaps"], host_required=True)
]
"""DSN for connecting to an LDAP server."""

__all__ = [
    "Config",
    "EnvFirstSettings",
    "LdapDsn",
    "load_config",
]


class EnvFirstSettings(BaseSettings):
    """Base class for Pydantic settings with environment overrides.

    Supports camel-case keys, forbids unknown keys, and prioritizes
    environment variables over arguments to the class constructor.
    """

    model_config = SettingsConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    @override
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Override the sources of settings.

        Deactivate :file:`.env` and secret file support. Allow environment
        variables to override init parameters, since init parameters come
        from the YAML configuration file.
        """
        return (env_settings, init_settings)


class Config(EnvFirstSettings):
    """Configuration for Porthor."""

    directory_url: LdapDsn | None = Field(
        None,
        title="Directory URL",
        description=(
            "URL of the LDAP server, ``ldap://`` or ``ldaps://``. If not set,"
            " all records go to the local record store."
        ),
        validation_alias=AliasChoices("DIRECTORY_URL", "directoryUrl"),
    )

    bind_dn: str | None = Field(
        None,
        title="Simple bind DN",
        description=(
            "DN to bind as when talking to the directory. The directory is"
            " only used if this and the bind password are set."
        ),
        validation_alias=AliasChoices("BIND_DN", "bindDn"),
    )

    bind_password: SecretStr | None = Field(
        None,
        title="Simple bind password",
        description="Password for the bind DN",
        validation_alias=AliasChoices("BIND_PASSWORD", "bindPassword"),
    )

    base_dn: str = Field(
        DEFAULT_BASE_DN,
        title="Base DN",
        description=(
            "Root of the directory tree. Accounts live under ``ou=people``"
            " and groups under ``ou=groups`` below it."
        ),
        validation_alias=AliasChoices("BASE_DN", "baseDn"),
    )

    ca_file: Path | None = Field(
        None,
        title="CA certificate file",
        description=(
            "PEM or DER file of CA certificates to trust for the directory."
            " Relative paths are resolved against the working directory."
        ),
        validation_alias=AliasChoices("CA_FILE", "caFile"),
    )

    client_cert_file: Path | None = Field(
        None,
        title="Client certificate file",
        description="Certificate to present to the directory",
        validation_alias=AliasChoices("CLIENT_CERT_FILE", "clientCertFile"),
    )

    client_key_file: Path | None = Field(
        None,
        title="Client key file",
        description="Private key of the client certificate",
        validation_alias=AliasChoices("CLIENT_KEY_FILE", "clientKeyFile"),
    )

    insecure: bool = Field(
        False,
        title="Disable certificate verification",
        description=(
            "If set to true, do not verify the certificate of the directory"
            " server. For testing only."
        ),
        validation_alias=AliasChoices("INSECURE", "insecure"),
    )

    uid_start: int = Field(
        DEFAULT_ID_START,
        title="First UID",
        description="Start (inclusive) of the UID allocation range",
        validation_alias=AliasChoices("UID_START", "uidStart"),
        ge=1,
    )

    uid_max: int = Field(
        DEFAULT_ID_MAX,
        title="UID limit",
        description="End (exclusive) of the UID allocation range",
        validation_alias=AliasChoices("UID_MAX", "uidMax"),
    )

    gid_start: int = Field(
        DEFAULT_ID_START,
        title="First GID",
        description="Start (inclusive) of the GID allocation range",
        validation_alias=AliasChoices("GID_START", "gidStart"),
        ge=1,
    )

    gid_max: int = Field(
        DEFAULT_ID_MAX,
        title="GID limit",
        description="End (exclusive) of the GID allocation range",
        validation_alias=AliasChoices("GID_MAX", "gidMax"),
    )

    homedir_base: str = Field(
        DEFAULT_HOMEDIR_BASE,
        title="Home directory base",
        description="Parent of the home directories of new accounts",
        validation_alias=AliasChoices("HOMEDIR_BASE", "homedirBase"),
    )

    default_shell: str = Field(
        DEFAULT_SHELL,
        title="Login shell",
        description="Login shell of new accounts",
        validation_alias=AliasChoices("DEFAULT_SHELL", "defaultShell"),
    )

    data_dir: Path = Field(
        Path("data"),
        title="Local data directory",
        description=(
            "Directory holding the local group record store and the"
            " deferred-import entries"
        ),
        validation_alias=AliasChoices("DATA_DIR", "dataDir"),
    )

    log_level: LogLevel = Field(
        LogLevel.INFO,
        title="Log level",
        validation_alias=AliasChoices("LOG_LEVEL", "logLevel"),
    )

    log_profile: Profile = Field(
        Profile.production,
        title="Logging profile",
        description="``production`` for JSON logs, ``development`` for text",
        validation_alias=AliasChoices("LOG_PROFILE", "logProfile"),
    )

    @model_validator(mode="after")
    def _validate_password(self) -> Self:
        if self.bind_dn and not self.bind_password:
            raise ValueError("bindPassword required if bindDn is set")
        return self

    @model_validator(mode="after")
    def _validate_ranges(self) -> Self:
        if self.uid_start >= self.uid_max:
            raise ValueError("uidStart must be less than uidMax")
        if self.gid_start >= self.gid_max:
            raise ValueError("gidStart must be less than gidMax")
        return self

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Construct a Config object from a configuration file.

        Parameters
        ----------
        path
            Path to the configuration file in YAML.

        Returns
        -------
        Config
            The corresponding `Config` object.
        """
        with path.open("r") as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    @property
    def directory_configured(self) -> bool:
        """Whether the directory should be used for reads and writes."""
        return bool(self.directory_url and self.bind_dn and self.bind_password)

    @property
    def gid_range(self) -> AllocationRange:
        """Allocation range for GIDs."""
        return AllocationRange(start=self.gid_start, maximum=self.gid_max)

    @property
    def groups_base_dn(self) -> str:
        """Base DN of group entries."""
        return f"ou=groups,{self.base_dn}"

    @property
    def people_base_dn(self) -> str:
        """Base DN of account entries."""
        return f"ou=people,{self.base_dn}"

    @property
    def uid_range(self) -> AllocationRange:
        """Allocation range for UIDs."""
        return AllocationRange(start=self.uid_start, maximum=self.uid_max)

    def account_dn(self, uid: str) -> str:
        """Return the DN of the account with the given login name."""
        return f"uid={uid},{self.people_base_dn}"

    def group_dn(self, name: str) -> str:
        """Return the DN of the group with the given name."""
        return f"cn={name},{self.groups_base_dn}"

    def configure_logging(self) -> None:
        """Configure logging based on the Porthor configuration.

        Log messages are sent to standard error, since the command-line
        interface writes its results to standard output.
        """
        configure_logging(
            name="porthor", profile=self.log_profile, log_level=self.log_level
        )
        for handler in logging.getLogger("porthor").handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setStream(sys.stderr)


def load_config(path: Path | None = None) -> Config:
    """Load the Porthor configuration.

    Parameters
    ----------
    path
        YAML configuration file. If not given, the file named by the
        ``PORTHOR_CONFIG_PATH`` environment variable is used, and if that is
        not set either, configuration comes only from the environment.

    Returns
    -------
    Config
        The loaded configuration.
    """
    if not path and os.getenv(CONFIG_PATH_ENV):
        path = Path(os.environ[CONFIG_PATH_ENV])
    if path:
        return Config.from_file(path)
    return Config()
