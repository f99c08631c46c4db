"""Models for accounts, groups, and provisioning results."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..constants import ACCOUNT_OBJECT_CLASSES, GROUP_OBJECT_CLASSES
from .enums import ProvisionVia

__all__ = [
    "Account",
    "AllocationRange",
    "Group",
    "NewAccount",
    "ProvisionOutcome",
]


@dataclass(frozen=True, slots=True)
class AllocationRange:
    """Range of valid numeric identifiers for one identifier class."""

    start: int
    """First valid identifier (inclusive)."""

    maximum: int
    """Upper bound (exclusive)."""

    def __contains__(self, value: object) -> bool:
        if not isinstance(value, int):
            return False
        return self.start <= value < self.maximum


class NewAccount(BaseModel):
    """Request to provision a new account."""

    first_name: str = Field(
        ..., title="First name", examples=["Jean"], min_length=1
    )

    last_name: str = Field("", title="Last name", examples=["Dupont"])

    email: str = Field(
        ..., title="Email address", examples=["jean@example.com"]
    )

    password: SecretStr = Field(..., title="Initial password")

    @property
    def display_name(self) -> str:
        """Full name used as the ``cn`` of the account."""
        return f"{self.first_name} {self.last_name}".strip()


class Account(BaseModel):
    """A POSIX account, from the directory or a deferred-import entry.

    Only ``uid`` is guaranteed to be set. Entries read back from the
    directory or from hand-edited files may be missing any other attribute.
    """

    dn: str | None = Field(
        None,
        title="Distinguished name",
        examples=["uid=jeand,ou=people,dc=homelab,dc=churlet,dc=eu"],
    )

    uid: str = Field(..., title="Login name", examples=["jeand"], min_length=1)

    cn: str | None = Field(
        None, title="Display name", examples=["Jean Dupont"]
    )

    sn: str | None = Field(None, title="Surname", examples=["Dupont"])

    mail: str | None = Field(
        None, title="Email address", examples=["jean@example.com"]
    )

    uid_number: int | None = Field(None, title="UID number", examples=[3000])

    gid_number: int | None = Field(
        None, title="Primary GID", examples=[3000]
    )

    home_directory: str | None = Field(
        None, title="Home directory", examples=["/mnt/pool/users/jeand"]
    )

    login_shell: str | None = Field(
        None, title="Login shell", examples=["/usr/sbin/nologin"]
    )

    user_password: str | None = Field(
        None,
        title="Credential digest",
        description="Salted digest of the password, never shown in output",
        exclude=True,
    )

    def to_directory_attributes(self) -> dict[str, str | list[str]]:
        """Convert to the attribute dictionary for a directory add.

        Returns
        -------
        dict
            Attributes of the new entry, excluding ``objectClass``, which is
            passed separately to the directory client. Unset attributes are
            omitted.
        """
        attributes: dict[str, str | list[str]] = {
            "cn": self.cn or self.uid,
            "sn": self.sn or self.uid,
            "uid": self.uid,
            "uidNumber": _number(self.uid_number),
            "gidNumber": _number(self.gid_number),
            "homeDirectory": self.home_directory or "",
            "loginShell": self.login_shell or "",
            "mail": self.mail or "",
        }
        if self.user_password:
            attributes["userPassword"] = self.user_password
        return {k: v for k, v in attributes.items() if v != ""}

    @property
    def object_classes(self) -> list[str]:
        """Object classes of the directory entry."""
        return list(ACCOUNT_OBJECT_CLASSES)


class Group(BaseModel):
    """A POSIX group.

    The aliases match the serialized form of the local group record store,
    which uses the lower-case LDIF attribute names.
    """

    model_config = ConfigDict(populate_by_name=True)

    dn: str | None = Field(
        None,
        title="Distinguished name",
        examples=["cn=jeand,ou=groups,dc=homelab,dc=churlet,dc=eu"],
    )

    cn: str = Field(..., title="Group name", examples=["jeand"], min_length=1)

    gid_number: int | None = Field(
        None, title="GID number", examples=[3000], alias="gidnumber"
    )

    member_uid: list[str] = Field(
        default_factory=list,
        title="Members",
        description="Login names of members, in insertion order",
        examples=[["jeand"]],
        alias="memberuid",
    )

    def to_directory_attributes(self) -> dict[str, str | list[str]]:
        """Convert to the attribute dictionary for a directory add."""
        attributes: dict[str, str | list[str]] = {
            "cn": self.cn,
            "gidNumber": _number(self.gid_number),
        }
        if self.member_uid:
            attributes["memberUid"] = list(self.member_uid)
        return {k: v for k, v in attributes.items() if v != ""}

    def to_store(self) -> dict[str, object]:
        """Serialize in the format of the local group record store."""
        return self.model_dump(by_alias=True, exclude={"dn"})

    @property
    def object_classes(self) -> list[str]:
        """Object classes of the directory entry."""
        return list(GROUP_OBJECT_CLASSES)


class ProvisionOutcome(BaseModel):
    """Result of provisioning an account or a group.

    Provisioning succeeds whether or not the directory accepted the records.
    ``via`` says whether the directory holds the new records or whether they
    are waiting in deferred-import files for an operator.
    """

    via: ProvisionVia = Field(..., title="Where the records ended up")

    dn: str | None = Field(
        None,
        title="Account DN",
        description="Not set when provisioning a standalone group",
    )

    group_dn: str = Field(..., title="Group DN")

    uid: str | None = Field(None, title="Login name of the new account")

    uid_number: int | None = Field(None, title="UID of the new account")

    gid_number: int = Field(..., title="GID of the group")

    file: Path | None = Field(
        None,
        title="Account deferred-import entry",
        description="Only set when the directory did not take the account",
    )

    group_file: Path | None = Field(
        None,
        title="Group deferred-import entry",
        description="Always written for groups created with an account",
    )

    error_file: Path | None = Field(
        None,
        title="Error note",
        description="Raw directory error, if the directory attempt failed",
    )


def _number(value: int | None) -> str:
    return "" if value is None else str(value)
