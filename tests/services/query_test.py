"""Tests for listing accounts and groups."""

from __future__ import annotations

from pathlib import Path

import pytest
from safir.testing.logging import parse_log_tuples

from porthor.config import Config
from porthor.factory import Factory
from porthor.models.identity import Account, Group

from ..support.ldap import MockLDAP


def test_local(factory: Factory, config: Config) -> None:
    query_service = factory.create_query_service()
    assert query_service.list_accounts() == []
    assert query_service.list_groups() == []

    deferred_store = factory.create_deferred_store()
    group_store = factory.create_group_store()
    deferred_store.write_account(
        Account(
            dn="uid=jeand,ou=people,dc=example,dc=com",
            uid="jeand",
            cn="Jean Dupont",
            uid_number=3000,
            gid_number=3000,
            user_password="{SSHA}abcd",
        )
    )
    group_store.append(Group(cn="staff", gid_number=3001))
    group_store.append(Group(cn="jeand", gid_number=3000))
    deferred_store.write_group(Group(cn="jeand", gid_number=3999))
    deferred_store.write_group(
        Group(
            dn="cn=admins,ou=groups,dc=example,dc=com",
            cn="admins",
            gid_number=3002,
            member_uid=["jeand"],
        )
    )

    accounts = query_service.list_accounts()
    assert accounts == [
        Account(
            dn="uid=jeand,ou=people,dc=example,dc=com",
            uid="jeand",
            cn="Jean Dupont",
            uid_number=3000,
            gid_number=3000,
        )
    ]
    assert "user_password" not in accounts[0].model_dump()

    # The group store comes first and wins on name collisions. Groups
    # without a DN get the one they would have in the directory.
    assert query_service.list_groups() == [
        Group(dn=config.group_dn("staff"), cn="staff", gid_number=3001),
        Group(dn=config.group_dn("jeand"), cn="jeand", gid_number=3000),
        Group(
            dn="cn=admins,ou=groups,dc=example,dc=com",
            cn="admins",
            gid_number=3002,
            member_uid=["jeand"],
        ),
    ]


def test_corrupt_store(
    factory: Factory, config: Config, caplog: pytest.LogCaptureFixture
) -> None:
    deferred_store = factory.create_deferred_store()
    deferred_store.write_group(Group(cn="staff", gid_number=3001))
    (config.data_dir / "groups.json").write_text("not json")
    query_service = factory.create_query_service()

    caplog.clear()
    assert query_service.list_groups() == [
        Group(dn=config.group_dn("staff"), cn="staff", gid_number=3001)
    ]
    messages = parse_log_tuples("porthor", caplog.record_tuples)
    assert len(messages) == 1
    assert messages[0]["event"] == "Cannot read local group store"
    assert messages[0]["severity"] == "warning"


def test_directory(
    directory_factory: Factory, directory_config: Config, mock_ldap: MockLDAP
) -> None:
    mock_ldap.add_test_account(directory_config, "jeand", 3000, 3000)
    mock_ldap.add_test_group(directory_config, "jeand", 3000, ["jeand"])
    directory_factory.create_group_store().append(
        Group(cn="local", gid_number=3500)
    )
    query_service = directory_factory.create_query_service()

    # When the directory is available, the local store is not consulted.
    assert query_service.list_accounts() == [
        Account(
            dn="uid=jeand,ou=people,dc=example,dc=com",
            uid="jeand",
            cn="Jeand",
            uid_number=3000,
            gid_number=3000,
            home_directory="/home/jeand",
        )
    ]
    assert query_service.list_groups() == [
        Group(
            dn="cn=jeand,ou=groups,dc=example,dc=com",
            cn="jeand",
            gid_number=3000,
            member_uid=["jeand"],
        )
    ]


def test_directory_failure(
    directory_factory: Factory,
    directory_config: Config,
    mock_ldap: MockLDAP,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mock_ldap.add_test_account(directory_config, "jeand", 3000, 3000)
    mock_ldap.fail_for_test("bind")
    directory_factory.create_group_store().append(
        Group(cn="local", gid_number=3500)
    )
    directory_factory.create_deferred_store().write_account(
        Account(uid="maried", uid_number=3001)
    )
    query_service = directory_factory.create_query_service()

    caplog.clear()
    assert query_service.list_accounts() == [
        Account(uid="maried", uid_number=3001)
    ]
    assert query_service.list_groups() == [
        Group(
            dn=directory_config.group_dn("local"),
            cn="local",
            gid_number=3500,
        )
    ]
    log = parse_log_tuples("porthor", caplog.record_tuples)
    warnings = [m for m in log if m["severity"] == "warning"]
    assert [m["event"] for m in warnings] == [
        "Cannot list accounts from directory, using local store",
        "Cannot list groups from directory, using local store",
    ]
    assert mock_ldap.unbind_count == 2


def test_unlistable_deferred_entries(
    factory: Factory,
    config: Config,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    factory.create_group_store().append(Group(cn="staff", gid_number=3001))
    deferred_store = factory.create_deferred_store()
    deferred_store.write_account(Account(uid="jeand", uid_number=3000))
    query_service = factory.create_query_service()

    def iterdir(self: Path) -> None:
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "iterdir", iterdir)
    caplog.clear()
    assert query_service.list_accounts() == []
    assert query_service.list_groups() == [
        Group(dn=config.group_dn("staff"), cn="staff", gid_number=3001)
    ]
    log = parse_log_tuples("porthor", caplog.record_tuples)
    warnings = [m for m in log if m["severity"] == "warning"]
    assert [m["event"] for m in warnings] == [
        "Cannot read deferred entries",
        "Cannot read deferred entries",
    ]
