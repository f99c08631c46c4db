"""UID and GID allocation."""

from __future__ import annotations

from collections.abc import Iterable

from structlog.stdlib import BoundLogger

from ..config import Config
from ..exceptions import (
    IncompleteSearchError,
    RangeExhaustedError,
    TransportError,
)
from ..models.enums import IdClass
from ..models.identity import AllocationRange
from ..storage.ldap import DirectoryBackend
from ..storage.local import DeferredImportStore, GroupStore

__all__ = ["IdAllocator"]


class IdAllocator:
    """Allocate the next free UID or GID.

    The directory and the local record store can diverge (a directory write
    may succeed one time and fail the next), so both are scanned on every
    call and nothing is cached. The next identifier is one more than the
    highest identifier in use within the configured range.

    Parameters
    ----------
    config
        Porthor configuration, which provides the allocation ranges.
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

    def allocate(self, id_class: IdClass) -> int:
        """Return the next free identifier of the given class.

        Parameters
        ----------
        id_class
            Whether to allocate a UID or a GID.

        Returns
        -------
        int
            One more than the highest identifier in use, or the start of the
            range if none are in use.

        Raises
        ------
        RangeExhaustedError
            Raised if the highest identifier in use is the last one in the
            range.
        IncompleteSearchError
            Raised if the directory returned only part of its entries.
        """
        if id_class == IdClass.user:
            id_range = self._config.uid_range
        else:
            id_range = self._config.gid_range
        current = id_range.start - 1
        current = _fold(current, self._directory_ids(id_class), id_range)
        current = _fold(current, self._local_ids(id_class), id_range)
        next_id = current + 1
        if next_id >= id_range.maximum:
            self._logger.error(
                "Identifier range exhausted",
                id_class=id_class.value,
                start=id_range.start,
                max=id_range.maximum,
            )
            raise RangeExhaustedError(
                id_class.value, id_range.start, id_range.maximum
            )
        self._logger.debug(
            "Allocated identifier", id_class=id_class.value, id=next_id
        )
        return next_id

    def _directory_ids(self, id_class: IdClass) -> list[int | None]:
        """Collect identifiers in use in the directory.

        A primary GID of an account consumes the GID range even if no group
        with that GID exists, so accounts are included for GIDs. If the
        directory cannot be searched, it contributes nothing and the local
        store alone decides. A search truncated by a server limit is
        raised, since allocating from part of the directory could reuse an
        identifier.
        """
        if not self._directory.is_live:
            return []
        try:
            if id_class == IdClass.user:
                accounts = self._directory.search_accounts()
                return [a.uid_number for a in accounts]
            groups = self._directory.search_groups()
            accounts = self._directory.search_accounts()
        except IncompleteSearchError:
            raise
        except TransportError as e:
            msg = "Cannot scan directory for identifiers, using local store"
            self._logger.warning(msg, id_class=id_class.value, error=str(e))
            return []
        gids = [g.gid_number for g in groups]
        gids.extend(a.gid_number for a in accounts)
        return gids

    def _local_ids(self, id_class: IdClass) -> list[int | None]:
        """Collect identifiers in use in the local record store."""
        if id_class == IdClass.user:
            return list(self._deferred_store.uid_numbers())
        groups = self._group_store.read_all()
        gids: list[int | None] = [g.gid_number for g in groups]
        gids.extend(self._deferred_store.gid_numbers())
        return gids


def _fold(
    current: int, values: Iterable[int | None], id_range: AllocationRange
) -> int:
    """Raise ``current`` to the highest of ``values`` inside the range."""
    for value in values:
        if value is not None and value in id_range:
            current = max(current, value)
    return current
