"""Read-only listing of accounts and groups."""

from __future__ import annotations

from structlog.stdlib import BoundLogger

from ..config import Config
from ..exceptions import StoreError, TransportError
from ..models.identity import Account, Group
from ..storage.ldap import DirectoryBackend
from ..storage.local import DeferredImportStore, GroupStore

__all__ = ["QueryService"]


class QueryService:
    """List accounts and groups from the best available source.

    The directory is authoritative when it can be reached. Otherwise the
    local record store is used, which holds everything provisioned while
    the directory was unavailable plus the groups created locally. Listing
    never fails: sources that cannot be read are logged and skipped.

    Parameters
    ----------
    config
        Porthor configuration.
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
        directory: DirectoryBackend,
        group_store: GroupStore,
        deferred_store: DeferredImportStore,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._directory = directory
        self._group_store = group_store
        self._deferred_store = deferred_store
        self._logger = logger

    def list_accounts(self) -> list[Account]:
        """List all accounts.

        Returns
        -------
        list of Account
            Accounts from the directory if it could be searched, otherwise
            the accounts waiting in deferred-import entries.
        """
        if self._directory.is_live:
            try:
                return self._directory.search_accounts()
            except TransportError as e:
                msg = "Cannot list accounts from directory, using local store"
                self._logger.warning(msg, error=str(e))
        try:
            return self._deferred_store.read_accounts()
        except StoreError as e:
            self._logger.warning("Cannot read deferred entries", error=str(e))
            return []

    def list_groups(self) -> list[Group]:
        """List all groups.

        Returns
        -------
        list of Group
            Groups from the directory if it could be searched. Otherwise,
            the groups in the local group store followed by any groups from
            deferred-import entries with names not already seen. Local
            groups without a DN get the DN they would have in the
            directory.
        """
        if self._directory.is_live:
            try:
                return self._directory.search_groups()
            except TransportError as e:
                msg = "Cannot list groups from directory, using local store"
                self._logger.warning(msg, error=str(e))

        try:
            stored = self._group_store.read_all()
        except StoreError as e:
            self._logger.warning("Cannot read local group store", error=str(e))
            stored = []
        try:
            deferred = self._deferred_store.read_groups()
        except StoreError as e:
            self._logger.warning("Cannot read deferred entries", error=str(e))
            deferred = []
        seen = set()
        groups = []
        for group in stored + deferred:
            if group.cn in seen:
                continue
            seen.add(group.cn)
            if not group.dn:
                dn = self._config.group_dn(group.cn)
                group = group.model_copy(update={"dn": dn})
            groups.append(group)
        return groups
