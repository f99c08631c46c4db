"""LDAP storage layer for Porthor."""

from __future__ import annotations

from abc import ABCMeta, abstractmethod
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from functools import wraps
from typing import Any, ParamSpec, TypeVar
from urllib.parse import urlsplit

from ldap3 import MODIFY_REPLACE, NONE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from structlog.stdlib import BoundLogger

from ..config import Config
from ..constants import LDAP_TIMEOUT
from ..exceptions import (
    IncompleteSearchError,
    NotConfiguredError,
    TransportError,
)
from ..models.identity import Account, Group
from ..transport import build_transport_profile

_ACCOUNT_ATTRIBUTES = [
    "uid",
    "cn",
    "sn",
    "mail",
    "uidNumber",
    "gidNumber",
    "homeDirectory",
    "loginShell",
]
"""Attributes retrieved when searching for accounts."""

_GROUP_ATTRIBUTES = ["cn", "gidNumber", "memberUid"]
"""Attributes retrieved when searching for groups."""

__all__ = [
    "DirectoryBackend",
    "LiveDirectory",
    "UnconfiguredDirectory",
]


P = ParamSpec("P")
T = TypeVar("T")


def _convert_exception(f: Callable[P, T]) -> Callable[P, T]:
    """Convert ldap3 exceptions to `TransportError`."""

    @wraps(f)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return f(*args, **kwargs)
        except LDAPException as e:
            msg = f"Directory {f.__name__.removeprefix('_')} failed"
            raise TransportError(msg, str(e) or type(e).__name__) from e

    return wrapper


def _values(attributes: Mapping[str, Any], name: str) -> list[str]:
    """Return all values of an attribute as strings.

    ldap3 returns single values or lists depending on whether schema
    information is available, so accept both.
    """
    value = attributes.get(name.lower())
    if value is None:
        return []
    if isinstance(value, list | tuple):
        return [str(v) for v in value]
    return [str(value)]


def _first(attributes: Mapping[str, Any], name: str) -> str | None:
    values = _values(attributes, name)
    return values[0] if values else None


def _number(attributes: Mapping[str, Any], name: str) -> int | None:
    value = _first(attributes, name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class DirectoryBackend(metaclass=ABCMeta):
    """Access to the directory service, live or absent.

    Business logic asks the backend whether it is live instead of checking
    the configuration itself.
    """

    is_live: bool = False
    """Whether operations are sent to a real directory."""

    @abstractmethod
    def search_accounts(self) -> list[Account]:
        """Retrieve all POSIX accounts.

        Returns
        -------
        list of Account
            Accounts under ``ou=people``.

        Raises
        ------
        TransportError
            Raised if the directory could not be searched.
        """

    @abstractmethod
    def search_groups(self) -> list[Group]:
        """Retrieve all POSIX groups.

        Returns
        -------
        list of Group
            Groups under ``ou=groups``.

        Raises
        ------
        TransportError
            Raised if the directory could not be searched.
        """

    @abstractmethod
    def add_entries(self, entries: Sequence[Account | Group]) -> None:
        """Add new entries over a single connection, in order.

        Parameters
        ----------
        entries
            Entries to add. Each must have its ``dn`` set. Processing stops
            at the first failure.

        Raises
        ------
        NotConfiguredError
            Raised if there is no directory.
        TransportError
            Raised if any step failed.
        """

    @abstractmethod
    def modify(self, dn: str, changes: Mapping[str, str]) -> None:
        """Replace attribute values of an entry.

        Parameters
        ----------
        dn
            DN of the entry.
        changes
            New value of each attribute to replace.

        Raises
        ------
        NotConfiguredError
            Raised if there is no directory.
        TransportError
            Raised if the modification failed.
        """

    @abstractmethod
    def delete(self, dn: str) -> None:
        """Delete an entry.

        Parameters
        ----------
        dn
            DN of the entry.

        Raises
        ------
        NotConfiguredError
            Raised if there is no directory.
        TransportError
            Raised if the deletion failed.
        """


class UnconfiguredDirectory(DirectoryBackend):
    """Stand-in used when no directory is configured.

    Searches find nothing and writes are refused.
    """

    is_live = False

    def search_accounts(self) -> list[Account]:
        return []

    def search_groups(self) -> list[Group]:
        return []

    def add_entries(self, entries: Sequence[Account | Group]) -> None:
        raise NotConfiguredError("Directory not configured")

    def modify(self, dn: str, changes: Mapping[str, str]) -> None:
        raise NotConfiguredError("Directory not configured")

    def delete(self, dn: str) -> None:
        raise NotConfiguredError("Directory not configured")


class LiveDirectory(DirectoryBackend):
    """LDAP directory accessed with ldap3.

    Every operation builds a fresh transport profile, opens a new
    connection, binds, does its work, and unbinds before returning, whether
    or not the work succeeded. Failures are not retried.

    Parameters
    ----------
    config
        Porthor configuration.
    logger
        Logger for debug messages and errors.
    """

    is_live = True

    def __init__(self, config: Config, logger: BoundLogger) -> None:
        self._config = config
        self._logger = logger.bind(ldap_url=str(config.directory_url))

    def search_accounts(self) -> list[Account]:
        results = self._search(
            self._config.people_base_dn,
            "(objectClass=posixAccount)",
            _ACCOUNT_ATTRIBUTES,
        )
        accounts = []
        for dn, attributes in results:
            uid = _first(attributes, "uid")
            if not uid:
                self._logger.warning("Account entry has no uid", dn=dn)
                continue
            account = Account(
                dn=dn,
                uid=uid,
                cn=_first(attributes, "cn"),
                sn=_first(attributes, "sn"),
                mail=_first(attributes, "mail"),
                uid_number=_number(attributes, "uidNumber"),
                gid_number=_number(attributes, "gidNumber"),
                home_directory=_first(attributes, "homeDirectory"),
                login_shell=_first(attributes, "loginShell"),
            )
            accounts.append(account)
        return accounts

    def search_groups(self) -> list[Group]:
        results = self._search(
            self._config.groups_base_dn,
            "(objectClass=posixGroup)",
            _GROUP_ATTRIBUTES,
        )
        groups = []
        for dn, attributes in results:
            name = _first(attributes, "cn")
            if not name:
                self._logger.warning("Group entry has no cn", dn=dn)
                continue
            group = Group(
                dn=dn,
                cn=name,
                gid_number=_number(attributes, "gidNumber"),
                member_uid=_values(attributes, "memberUid"),
            )
            groups.append(group)
        return groups

    @_convert_exception
    def add_entries(self, entries: Sequence[Account | Group]) -> None:
        with self._connect() as conn:
            for entry in entries:
                if not entry.dn:
                    raise ValueError("Entry to add has no DN")
                self._logger.debug("Adding directory entry", dn=entry.dn)
                conn.add(
                    entry.dn,
                    object_class=entry.object_classes,
                    attributes=entry.to_directory_attributes(),
                )
                self._logger.info("Added directory entry", dn=entry.dn)

    @_convert_exception
    def modify(self, dn: str, changes: Mapping[str, str]) -> None:
        ldap_changes = {
            a: [(MODIFY_REPLACE, [v])] for a, v in changes.items()
        }
        with self._connect() as conn:
            conn.modify(dn, ldap_changes)
        self._logger.info(
            "Modified directory entry", dn=dn, attributes=sorted(changes)
        )

    @_convert_exception
    def delete(self, dn: str) -> None:
        with self._connect() as conn:
            conn.delete(dn)
        self._logger.info("Deleted directory entry", dn=dn)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        """Open and bind a connection, unbinding it on exit.

        Yields
        ------
        ldap3.Connection
            Bound connection.

        Raises
        ------
        ldap3.core.exceptions.LDAPException
            Raised if the connection could not be opened or bound.
        """
        profile = build_transport_profile(self._config, self._logger)
        url = urlsplit(profile.url)
        use_ssl = url.scheme == "ldaps"
        server = Server(
            url.hostname,
            port=url.port or (636 if use_ssl else 389),
            use_ssl=use_ssl,
            tls=profile.tls(),
            get_info=NONE,
            connect_timeout=LDAP_TIMEOUT,
        )
        password = None
        if profile.bind_password:
            password = profile.bind_password.get_secret_value()
        conn = Connection(
            server,
            user=profile.bind_dn,
            password=password,
            raise_exceptions=True,
            receive_timeout=LDAP_TIMEOUT,
        )
        try:
            conn.bind()
            yield conn
        finally:
            try:
                conn.unbind()
            except LDAPException as e:
                msg = "Error closing directory connection"
                self._logger.debug(msg, error=str(e))

    @_convert_exception
    def _search(
        self, base: str, filter_exp: str, attrlist: list[str]
    ) -> list[tuple[str, dict[str, Any]]]:
        """Perform a subtree search.

        Parameters
        ----------
        base
            Base DN of the search.
        filter_exp
            Search filter.
        attrlist
            List of attributes to retrieve.

        Returns
        -------
        list of tuple
            DN and attributes of each result entry. Attribute names are
            lower-cased.

        Raises
        ------
        IncompleteSearchError
            Raised if the server returned only some of the matching entries.
        TransportError
            Raised if the search failed.
        """
        logger = self._logger.bind(ldap_base=base, ldap_search=filter_exp)
        logger.debug("Querying directory")
        with self._connect() as conn:
            conn.search(
                search_base=base,
                search_filter=filter_exp,
                search_scope=SUBTREE,
                attributes=attrlist,
                time_limit=int(LDAP_TIMEOUT),
            )
            response = conn.response or []
            result = conn.result or {}

        # ldap3 does not raise for size or time limits even when asked to
        # raise exceptions, and returns the truncated response instead.
        if result.get("result", 0) != 0:
            description = result.get("description") or str(result["result"])
            logger.warning("Directory search incomplete", error=description)
            raise IncompleteSearchError(
                "Directory search incomplete", description
            )
        results = []
        for entry in response:
            if entry.get("type") != "searchResEntry":
                continue
            attributes = {
                k.lower(): v for k, v in entry.get("attributes", {}).items()
            }
            results.append((entry["dn"], attributes))
        logger.debug("Directory entries found", count=len(results))
        return results
