"""Creation, modification, and deletion of accounts and groups."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from structlog.stdlib import BoundLogger

from ..config import Config
from ..constants import GROUP_FILE_PREFIX
from ..exceptions import (
    DuplicateError,
    InvalidNameError,
    NotConfiguredError,
    NotFoundError,
    TransportError,
)
from ..models.enums import IdClass, ProvisionVia
from ..models.identity import Account, Group, NewAccount, ProvisionOutcome
from ..storage.ldap import DirectoryBackend
from ..storage.local import DeferredImportStore, GroupStore
from ..util import derive_username, hash_password, is_valid_group_name
from .allocator import IdAllocator

__all__ = ["ProvisioningService"]


class ProvisioningService:
    """Write new identities to the directory or the local record store.

    New accounts and groups are written to the directory when one is
    configured. If there is no directory, or the directory rejects the write
    for any reason, the records are saved as deferred-import entries for an
    operator to load later, and provisioning still succeeds.

    Parameters
    ----------
    config
        Porthor configuration.
    allocator
        Allocator for UIDs and GIDs.
    directory
        Directory backend.
    group_store
        Local group record store.
    deferred_store
        Store of deferred-import entries.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        config: Config,
        allocator: IdAllocator,
        directory: DirectoryBackend,
        group_store: GroupStore,
        deferred_store: DeferredImportStore,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._allocator = allocator
        self._directory = directory
        self._group_store = group_store
        self._deferred_store = deferred_store
        self._logger = logger

    def provision_account(self, request: NewAccount) -> ProvisionOutcome:
        """Create an account and its personal group.

        The personal group has the same name as the login name of the
        account, is the primary group of the account, and has the account
        as its only member. It is always recorded in the local group store
        and as a deferred-import entry, since the local store is the
        fallback source for group listings. The group and account are then
        added to the directory together over one connection. If that fails
        or there is no directory, the account is saved as a deferred-import
        entry instead.

        Parameters
        ----------
        request
            Details of the new account.

        Returns
        -------
        ProvisionOutcome
            Where the account ended up and the identifiers assigned to it.

        Raises
        ------
        InvalidNameError
            Raised if no login name can be derived from the name.
        RangeExhaustedError
            Raised if no UID or GID is left to assign.
        StoreError
            Raised if the local record store cannot be read or written.
        """
        uid = derive_username(request.first_name, request.last_name)
        logger = self._logger.bind(user=uid)
        uid_number = self._allocator.allocate(IdClass.user)
        gid_number = self._allocator.allocate(IdClass.group)
        logger.info(
            "Assigned new UID and GID", uid_number=uid_number, gid=gid_number
        )

        group = Group(
            dn=self._config.group_dn(uid),
            cn=uid,
            gid_number=gid_number,
            member_uid=[uid],
        )
        account = Account(
            dn=self._config.account_dn(uid),
            uid=uid,
            cn=request.display_name,
            sn=request.last_name,
            mail=request.email,
            uid_number=uid_number,
            gid_number=gid_number,
            home_directory=f"{self._config.homedir_base}/{uid}",
            login_shell=self._config.default_shell,
            user_password=hash_password(request.password.get_secret_value()),
        )

        if self._group_store.get(uid) is not None:
            logger.info("Personal group already stored locally", group=uid)
        else:
            self._group_store.append(group)
        group_file = self._deferred_store.write_group(group)

        error_file = self._add_to_directory([group, account], uid, logger)
        if self._directory.is_live and not error_file:
            return ProvisionOutcome(
                via=ProvisionVia.directory,
                dn=account.dn,
                group_dn=self._config.group_dn(uid),
                uid=uid,
                uid_number=uid_number,
                gid_number=gid_number,
                group_file=group_file,
            )

        account_file = self._deferred_store.write_account(account)
        logger.info("Saved account for later import", path=str(account_file))
        return ProvisionOutcome(
            via=ProvisionVia.fallback,
            dn=account.dn,
            group_dn=self._config.group_dn(uid),
            uid=uid,
            uid_number=uid_number,
            gid_number=gid_number,
            file=account_file,
            group_file=group_file,
            error_file=error_file,
        )

    def create_group(
        self,
        name: str,
        gid_number: int | None = None,
        members: Iterable[str] = (),
    ) -> ProvisionOutcome:
        """Create a standalone group.

        Parameters
        ----------
        name
            Name of the group.
        gid_number
            GID of the group. If not given, the next free GID is assigned.
        members
            Login names of the initial members.

        Returns
        -------
        ProvisionOutcome
            Where the group ended up and its GID.

        Raises
        ------
        DuplicateError
            Raised if a group with this name is already in the local group
            store. The store is left unchanged.
        InvalidNameError
            Raised if the name is not a valid group name.
        RangeExhaustedError
            Raised if no GID was given and none is left to assign.
        StoreError
            Raised if the local record store cannot be read or written.
        """
        if not is_valid_group_name(name):
            raise InvalidNameError(f"Invalid group name {name!r}")
        logger = self._logger.bind(group=name)
        if self._group_store.get(name) is not None:
            raise DuplicateError(f"Group {name} already exists")
        if gid_number is None:
            gid_number = self._allocator.allocate(IdClass.group)
            logger.info("Assigned new GID", gid=gid_number)

        group = Group(
            dn=self._config.group_dn(name),
            cn=name,
            gid_number=gid_number,
            member_uid=list(members),
        )
        self._group_store.append(group)
        group_file = self._deferred_store.write_group(group)

        error_name = f"{GROUP_FILE_PREFIX}{name}"
        error_file = self._add_to_directory([group], error_name, logger)
        if self._directory.is_live and not error_file:
            via = ProvisionVia.directory
        else:
            via = ProvisionVia.fallback
        return ProvisionOutcome(
            via=via,
            group_dn=self._config.group_dn(name),
            gid_number=gid_number,
            group_file=group_file,
            error_file=error_file,
        )

    def update_account(
        self,
        uid: str,
        *,
        mail: str | None = None,
        login_shell: str | None = None,
        cn: str | None = None,
    ) -> None:
        """Replace attributes of an account in the directory.

        Parameters
        ----------
        uid
            Login name of the account.
        mail
            New email address, if it should change.
        login_shell
            New login shell, if it should change.
        cn
            New display name, if it should change.

        Raises
        ------
        NotConfiguredError
            Raised if no directory is configured.
        TransportError
            Raised if the directory rejected the change.
        """
        if not self._directory.is_live:
            raise NotConfiguredError("Updating accounts requires a directory")
        requested = {"mail": mail, "loginShell": login_shell, "cn": cn}
        changes = {k: v for k, v in requested.items() if v is not None}
        if not changes:
            self._logger.debug("Nothing to update", user=uid)
            return
        self._directory.modify(self._config.account_dn(uid), changes)

    def delete_account(self, uid: str) -> None:
        """Delete an account from the directory.

        The personal group of the account is left alone.

        Parameters
        ----------
        uid
            Login name of the account.

        Raises
        ------
        NotConfiguredError
            Raised if no directory is configured.
        TransportError
            Raised if the directory rejected the deletion.
        """
        if not self._directory.is_live:
            raise NotConfiguredError("Deleting accounts requires a directory")
        self._directory.delete(self._config.account_dn(uid))

    def delete_group(self, name: str) -> None:
        """Remove a group from the local group store.

        Deferred-import entries for the group are left in place.

        Parameters
        ----------
        name
            Name of the group.

        Raises
        ------
        NotFoundError
            Raised if the group is not in the local group store.
        StoreError
            Raised if the local group store cannot be read or written.
        """
        groups = self._group_store.read_all()
        remaining = [g for g in groups if g.cn != name]
        if len(remaining) == len(groups):
            raise NotFoundError(f"Group {name} not found")
        self._group_store.replace_all(remaining)
        self._logger.info("Deleted group from local store", group=name)

    def _add_to_directory(
        self,
        entries: list[Account | Group],
        name: str,
        logger: BoundLogger,
    ) -> Path | None:
        """Try to add entries to the directory.

        Parameters
        ----------
        entries
            Entries to add, in order.
        name
            Base name of the error note to write on failure.
        logger
            Logger with the context of the operation.

        Returns
        -------
        Path or None
            Path to the error note if the directory rejected the entries,
            otherwise `None`.
        """
        if not self._directory.is_live:
            logger.info("No directory configured, saving records locally")
            return None
        try:
            self._directory.add_entries(entries)
        except TransportError as e:
            logger.warning(
                "Cannot add entries to directory, saving records locally",
                error=str(e),
            )
            return self._deferred_store.write_error(name, e.detail)
        return None
