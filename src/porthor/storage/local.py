"""Local record store for groups and deferred-import entries.

The local store is a standby mirror of the groups Porthor has created and a
landing zone for records that could not be written to the directory. It
consists of a JSON file of group records and a directory of LDIF files, one
per account or group, that an operator can import into the directory later.

There is no locking. Porthor assumes a single writer.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path

from pydantic import TypeAdapter, ValidationError
from structlog.stdlib import BoundLogger

from ..constants import (
    ERROR_SUFFIX,
    GROUP_FILE_PREFIX,
    GROUPS_FILE,
    LDIF_DIR,
    LDIF_SUFFIX,
)
from ..exceptions import StoreError
from ..models.identity import Account, Group

_GROUP_LIST_ADAPTER = TypeAdapter(list[Group])
"""Parser for the contents of the group record store."""

_NUMBER_REGEX = {
    "uidnumber": re.compile(r"^uidnumber:\s*(\d+)\s*$", re.IGNORECASE | re.M),
    "gidnumber": re.compile(r"^gidnumber:\s*(\d+)\s*$", re.IGNORECASE | re.M),
}
"""Regexes extracting numeric identifiers from raw LDIF text."""

__all__ = [
    "DeferredImportStore",
    "GroupStore",
    "format_ldif",
    "parse_ldif",
]


def format_ldif(lines: Iterable[tuple[str, str | int]]) -> str:
    """Format attribute lines as a deferred-import entry.

    Parameters
    ----------
    lines
        Pairs of lower-case attribute name and value, in output order.
        Multi-valued attributes are given as repeated pairs.

    Returns
    -------
    str
        LDIF text with a trailing newline.
    """
    return "".join(f"{key}: {value}\n" for key, value in lines)


def parse_ldif(text: str) -> dict[str, list[str]]:
    """Parse a deferred-import entry.

    Each line is split on the first colon and the value is stripped. Lines
    without a colon are ignored. Attribute names are lower-cased.

    Parameters
    ----------
    text
        Contents of the LDIF file.

    Returns
    -------
    dict of str to list of str
        All values of each attribute, in file order.
    """
    result: dict[str, list[str]] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            continue
        result.setdefault(key.strip().lower(), []).append(value.strip())
    return result


def _atomic_write(path: Path, content: str) -> None:
    """Replace the contents of a file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
        Path(tmp).replace(path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class GroupStore:
    """JSON file of group records.

    Parameters
    ----------
    data_dir
        Data directory holding the store.
    logger
        Logger to use.
    """

    def __init__(self, data_dir: Path, logger: BoundLogger) -> None:
        self._path = data_dir / GROUPS_FILE
        self._logger = logger

    @property
    def path(self) -> Path:
        """Path to the underlying file."""
        return self._path

    def read_all(self) -> list[Group]:
        """Read all group records.

        Returns
        -------
        list of Group
            Groups in store order. A missing or empty file is an empty
            store.

        Raises
        ------
        StoreError
            Raised if the file could not be read or parsed.
        """
        try:
            raw = self._path.read_text()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StoreError(f"Cannot read {self._path}: {e}") from e
        if not raw.strip():
            return []
        try:
            return _GROUP_LIST_ADAPTER.validate_json(raw)
        except ValidationError as e:
            raise StoreError(f"Invalid group store {self._path}: {e}") from e

    def get(self, name: str) -> Group | None:
        """Return the group with the given name, if any."""
        for group in self.read_all():
            if group.cn == name:
                return group
        return None

    def append(self, group: Group) -> None:
        """Add a group to the end of the store.

        Uniqueness is not checked here. Callers check with `get` first.

        Parameters
        ----------
        group
            Group to add.
        """
        groups = self.read_all()
        groups.append(group)
        self.replace_all(groups)
        self._logger.info(
            "Stored group locally", group=group.cn, gid=group.gid_number
        )

    def replace_all(self, groups: Iterable[Group]) -> None:
        """Replace the contents of the store.

        Parameters
        ----------
        groups
            New contents, in order.

        Raises
        ------
        StoreError
            Raised if the file could not be written.
        """
        data = [g.to_store() for g in groups]
        try:
            _atomic_write(self._path, json.dumps(data, indent=2) + "\n")
        except OSError as e:
            raise StoreError(f"Cannot write {self._path}: {e}") from e


class DeferredImportStore:
    """Directory of LDIF entries waiting to be imported by an operator.

    Entries are written once and never modified. Account entries are named
    ``<uid>.ldif``, group entries ``group_<cn>.ldif``, and error notes
    ``<name>.error.txt``.

    Parameters
    ----------
    data_dir
        Data directory holding the store.
    logger
        Logger to use.
    """

    def __init__(self, data_dir: Path, logger: BoundLogger) -> None:
        self._path = data_dir / LDIF_DIR
        self._logger = logger

    @property
    def path(self) -> Path:
        """Path to the LDIF directory."""
        return self._path

    def write_account(self, account: Account) -> Path:
        """Write the deferred-import entry for an account.

        Parameters
        ----------
        account
            Account to write. All attributes should be set.

        Returns
        -------
        Path
            Path to the new entry.
        """
        lines: list[tuple[str, str | int]] = [
            ("dn", account.dn or ""),
            ("cn", account.cn or ""),
            ("sn", account.sn or ""),
            ("uid", account.uid),
            ("uidnumber", account.uid_number or ""),
            ("gidnumber", account.gid_number or ""),
            ("homedirectory", account.home_directory or ""),
            ("loginshell", account.login_shell or ""),
            ("mail", account.mail or ""),
        ]
        lines.extend(("objectclass", c) for c in account.object_classes)
        lines.append(("userpassword", account.user_password or ""))
        path = self._path / f"{account.uid}{LDIF_SUFFIX}"
        self._write(path, format_ldif(lines))
        self._logger.info(
            "Wrote deferred account entry", user=account.uid, path=str(path)
        )
        return path

    def write_group(self, group: Group) -> Path:
        """Write the deferred-import entry for a group.

        Parameters
        ----------
        group
            Group to write.

        Returns
        -------
        Path
            Path to the new entry.
        """
        lines: list[tuple[str, str | int]] = [
            ("dn", group.dn or ""),
            ("cn", group.cn),
            ("gidnumber", group.gid_number or ""),
        ]
        lines.extend(("memberuid", m) for m in group.member_uid)
        lines.extend(("objectclass", c) for c in group.object_classes)
        path = self._path / f"{GROUP_FILE_PREFIX}{group.cn}{LDIF_SUFFIX}"
        self._write(path, format_ldif(lines))
        self._logger.info(
            "Wrote deferred group entry", group=group.cn, path=str(path)
        )
        return path

    def write_error(self, name: str, text: str) -> Path:
        """Save the raw text of a directory failure.

        Parameters
        ----------
        name
            Name of the record whose directory write failed.
        text
            Error text.

        Returns
        -------
        Path
            Path to the error note.
        """
        path = self._path / f"{name}{ERROR_SUFFIX}"
        self._write(path, text)
        return path

    def read_accounts(self) -> list[Account]:
        """Parse all account entries.

        Entries without a ``uid`` and files that cannot be read are skipped.

        Returns
        -------
        list of Account
            Accounts in file name order.

        Raises
        ------
        StoreError
            Raised if the directory of entries could not be listed.
        """
        accounts = []
        for _, text in self._entries(groups=False):
            attrs = parse_ldif(text)
            uid = _first(attrs, "uid")
            if not uid:
                continue
            account = Account(
                dn=_first(attrs, "dn"),
                uid=uid,
                cn=_first(attrs, "cn"),
                sn=_first(attrs, "sn"),
                mail=_first(attrs, "mail"),
                uid_number=_number(attrs, "uidnumber"),
                gid_number=_number(attrs, "gidnumber"),
                home_directory=_first(attrs, "homedirectory"),
                login_shell=_first(attrs, "loginshell"),
            )
            accounts.append(account)
        return accounts

    def read_groups(self) -> list[Group]:
        """Parse all group entries.

        Entries without a ``cn`` and files that cannot be read are skipped.

        Returns
        -------
        list of Group
            Groups in file name order.

        Raises
        ------
        StoreError
            Raised if the directory of entries could not be listed.
        """
        groups = []
        for _, text in self._entries(groups=True):
            attrs = parse_ldif(text)
            name = _first(attrs, "cn")
            if not name:
                continue
            group = Group(
                dn=_first(attrs, "dn"),
                cn=name,
                gid_number=_number(attrs, "gidnumber"),
                member_uid=attrs.get("memberuid", []),
            )
            groups.append(group)
        return groups

    def uid_numbers(self) -> list[int]:
        """Return the UIDs used by account entries."""
        return self._numbers("uidnumber", groups=False)

    def gid_numbers(self) -> list[int]:
        """Return the GIDs used by all entries, accounts and groups."""
        return self._numbers("gidnumber", groups=None)

    def _entries(
        self, *, groups: bool | None
    ) -> Iterator[tuple[Path, str]]:
        """Iterate over the contents of LDIF entries.

        Parameters
        ----------
        groups
            If true, only group entries. If false, only account entries. If
            `None`, all entries.

        Yields
        ------
        tuple of Path and str
            Path and contents of each readable entry.

        Raises
        ------
        StoreError
            Raised if the directory of entries could not be listed.
        """
        if not self._path.is_dir():
            return
        try:
            paths = sorted(self._path.iterdir())
        except OSError as e:
            raise StoreError(f"Cannot list {self._path}: {e}") from e
        for path in paths:
            if path.suffix != LDIF_SUFFIX or not path.is_file():
                continue
            is_group = path.name.startswith(GROUP_FILE_PREFIX)
            if groups is not None and is_group != groups:
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                msg = "Cannot read deferred entry, skipping"
                self._logger.warning(msg, path=str(path), error=str(e))
                continue
            yield path, text

    def _numbers(self, attr: str, *, groups: bool | None) -> list[int]:
        regex = _NUMBER_REGEX[attr]
        numbers = []
        for _, text in self._entries(groups=groups):
            match = regex.search(text)
            if match:
                numbers.append(int(match.group(1)))
        return numbers

    def _write(self, path: Path, content: str) -> None:
        try:
            self._path.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Cannot write {path}: {e}") from e


def _first(attrs: dict[str, list[str]], name: str) -> str | None:
    values = attrs.get(name)
    return values[0] or None if values else None


def _number(attrs: dict[str, list[str]], name: str) -> int | None:
    value = _first(attrs, name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
