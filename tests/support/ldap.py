"""Mock ldap3 API for testing."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from typing import Any
from unittest.mock import Mock, patch

import ldap3
from ldap3 import MODIFY_REPLACE, SUBTREE
from ldap3.core.exceptions import (
    LDAPEntryAlreadyExistsResult,
    LDAPException,
    LDAPNoSuchObjectResult,
    LDAPSocketOpenError,
)

from porthor.config import Config
from porthor.constants import LDAP_TIMEOUT
from porthor.storage import ldap

__all__ = ["MockLDAP", "patch_ldap"]


class MockLDAP(Mock):
    """Mock ldap3 connection for testing.

    Holds a flat dictionary of entries keyed by DN. Searches match on
    ``objectClass`` below the search base, and adds, modifications, and
    deletions change the stored entries so that later searches see them.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(spec=ldap3.Connection, **kwargs)
        self.response: list[dict[str, Any]] | None = None
        self.result: dict[str, Any] | None = None
        self.bound = False
        self.bind_count = 0
        self.unbind_count = 0
        self.added: list[str] = []
        self._entries: dict[str, dict[str, list[str]]] = {}
        self._failures: dict[str, LDAPException] = {}
        self._size_limit: int | None = None
        self._add_failures: dict[str, LDAPException] = {}

    def add_entry_for_test(
        self, dn: str, attributes: dict[str, list[str]]
    ) -> None:
        """Add an LDAP entry for testing.

        Parameters
        ----------
        dn
            DN of the entry.
        attributes
            Attributes of the entry, including ``objectClass``.
        """
        self._entries[dn] = attributes

    def add_test_account(
        self, config: Config, uid: str, uid_number: int, gid_number: int
    ) -> None:
        """Add a POSIX account for testing."""
        self.add_entry_for_test(
            config.account_dn(uid),
            {
                "objectClass": ["inetOrgPerson", "posixAccount", "top"],
                "uid": [uid],
                "cn": [uid.capitalize()],
                "uidNumber": [str(uid_number)],
                "gidNumber": [str(gid_number)],
                "homeDirectory": [f"/home/{uid}"],
            },
        )

    def add_test_group(
        self,
        config: Config,
        name: str,
        gid_number: int,
        members: Iterable[str] = (),
    ) -> None:
        """Add a POSIX group for testing."""
        attributes = {
            "objectClass": ["posixGroup", "top"],
            "cn": [name],
            "gidNumber": [str(gid_number)],
        }
        if members:
            attributes["memberUid"] = list(members)
        self.add_entry_for_test(config.group_dn(name), attributes)

    def fail_for_test(
        self, operation: str, error: LDAPException | None = None
    ) -> None:
        """Make an operation fail.

        Parameters
        ----------
        operation
            Name of the connection method that should fail, such as
            ``bind`` or ``add``.
        error
            Exception to raise. Defaults to a connection failure.
        """
        if not error:
            error = LDAPSocketOpenError("socket connection error")
        self._failures[operation] = error

    def fail_add_for_test(self, rdn_type: str, error: LDAPException) -> None:
        """Make adds fail only for entries with the given RDN attribute.

        Parameters
        ----------
        rdn_type
            Attribute of the first DN component, such as ``uid`` to fail
            adding accounts while still accepting groups.
        error
            Exception to raise.
        """
        self._add_failures[rdn_type] = error

    def get_entry_for_test(self, dn: str) -> dict[str, list[str]] | None:
        """Return the stored attributes of an entry, if it exists."""
        return self._entries.get(dn)

    def set_size_limit_for_test(self, size_limit: int) -> None:
        """Truncate search results the way a server size limit does.

        Searches return at most ``size_limit`` entries and report the
        ``sizeLimitExceeded`` result code when more entries matched.
        """
        self._size_limit = size_limit

    def bind(self) -> bool:
        self._check("bind")
        self.bound = True
        self.bind_count += 1
        return True

    def unbind(self) -> bool:
        self.bound = False
        self.unbind_count += 1
        return True

    def search(
        self,
        search_base: str,
        search_filter: str,
        search_scope: str = SUBTREE,
        attributes: list[str] | None = None,
        time_limit: int = 0,
        **kwargs: Any,
    ) -> bool:
        assert self.bound
        assert search_scope == SUBTREE
        assert time_limit == int(LDAP_TIMEOUT)
        self._check("search")

        match = re.match(r"\(objectClass=([^\)]+)\)$", search_filter)
        assert match, f"{search_filter} does not match regex of searches"
        object_class = match.group(1)
        self.response = []
        for dn, entry in self._entries.items():
            if not dn.endswith(f",{search_base}"):
                continue
            if object_class not in entry.get("objectClass", []):
                continue
            wanted = attributes or list(entry)
            result = {a: entry[a] for a in wanted if a in entry}
            self.response.append(
                {"type": "searchResEntry", "dn": dn, "attributes": result}
            )
        self.result = {"result": 0, "description": "success"}
        limit = self._size_limit
        if limit is not None and len(self.response) > limit:
            self.response = self.response[:limit]
            self.result = {"result": 4, "description": "sizeLimitExceeded"}
        return bool(self.response)

    def add(
        self,
        dn: str,
        object_class: list[str] | None = None,
        attributes: dict[str, str | list[str]] | None = None,
    ) -> bool:
        assert self.bound
        self._check("add")
        rdn_type = dn.split("=", 1)[0]
        if rdn_type in self._add_failures:
            raise self._add_failures[rdn_type]
        if dn in self._entries:
            raise LDAPEntryAlreadyExistsResult(
                result=68, description="entryAlreadyExists", dn=dn
            )
        entry = {"objectClass": list(object_class or [])}
        for key, value in (attributes or {}).items():
            entry[key] = value if isinstance(value, list) else [value]
        self._entries[dn] = entry
        self.added.append(dn)
        return True

    def modify(
        self, dn: str, changes: dict[str, list[tuple[str, list[str]]]]
    ) -> bool:
        assert self.bound
        self._check("modify")
        if dn not in self._entries:
            raise LDAPNoSuchObjectResult(
                result=32, description="noSuchObject", dn=dn
            )
        for attr, operations in changes.items():
            for operation, values in operations:
                assert operation == MODIFY_REPLACE
                self._entries[dn][attr] = list(values)
        return True

    def delete(self, dn: str) -> bool:
        assert self.bound
        self._check("delete")
        if dn not in self._entries:
            raise LDAPNoSuchObjectResult(
                result=32, description="noSuchObject", dn=dn
            )
        del self._entries[dn]
        return True

    def _check(self, operation: str) -> None:
        if operation in self._failures:
            raise self._failures[operation]


def patch_ldap() -> Iterator[MockLDAP]:
    """Mock the ldap3 API for testing.

    Returns
    -------
    MockLDAP
        The mock LDAP API.
    """
    mock_ldap = MockLDAP()
    with patch.object(ldap, "Connection") as mock_connection:
        mock_connection.return_value = mock_ldap
        yield mock_ldap
