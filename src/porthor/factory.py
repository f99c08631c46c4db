"""Create Porthor components."""

from __future__ import annotations

from typing import Self

import structlog
from structlog.stdlib import BoundLogger

from .config import Config
from .services.allocator import IdAllocator
from .services.provisioning import ProvisioningService
from .services.query import QueryService
from .storage.ldap import (
    DirectoryBackend,
    LiveDirectory,
    UnconfiguredDirectory,
)
from .storage.local import DeferredImportStore, GroupStore

__all__ = ["Factory"]


class Factory:
    """Build Porthor components.

    Nothing is cached between calls. Each component is built from the
    current configuration when requested, so every operation sees the
    current state of the directory and the local record store.

    Parameters
    ----------
    config
        Porthor configuration.
    logger
        Logger to use for errors.
    """

    @classmethod
    def standalone(cls, config: Config) -> Self:
        """Create a component factory with the default logger.

        Parameters
        ----------
        config
            Porthor configuration.

        Returns
        -------
        Factory
            Newly-created factory.
        """
        logger = structlog.get_logger("porthor")
        return cls(config, logger)

    def __init__(self, config: Config, logger: BoundLogger) -> None:
        self._config = config
        self._logger = logger

    def create_allocator(self) -> IdAllocator:
        """Create the UID and GID allocator.

        Returns
        -------
        IdAllocator
            Newly-created allocator.
        """
        return IdAllocator(
            config=self._config,
            directory=self.create_directory(),
            group_store=self.create_group_store(),
            deferred_store=self.create_deferred_store(),
            logger=self._logger,
        )

    def create_deferred_store(self) -> DeferredImportStore:
        """Create the store of deferred-import entries."""
        return DeferredImportStore(self._config.data_dir, self._logger)

    def create_directory(self) -> DirectoryBackend:
        """Create the directory backend.

        Returns
        -------
        DirectoryBackend
            Live directory if a URL, bind DN, and bind password are all
            configured, otherwise a stand-in that refuses writes.
        """
        if self._config.directory_configured:
            return LiveDirectory(self._config, self._logger)
        self._logger.debug("Directory not configured")
        return UnconfiguredDirectory()

    def create_group_store(self) -> GroupStore:
        """Create the local group record store."""
        return GroupStore(self._config.data_dir, self._logger)

    def create_provisioning_service(self) -> ProvisioningService:
        """Create the service that provisions accounts and groups.

        Returns
        -------
        ProvisioningService
            Newly-created service.
        """
        directory = self.create_directory()
        group_store = self.create_group_store()
        deferred_store = self.create_deferred_store()
        allocator = IdAllocator(
            config=self._config,
            directory=directory,
            group_store=group_store,
            deferred_store=deferred_store,
            logger=self._logger,
        )
        return ProvisioningService(
            config=self._config,
            allocator=allocator,
            directory=directory,
            group_store=group_store,
            deferred_store=deferred_store,
            logger=self._logger,
        )

    def create_query_service(self) -> QueryService:
        """Create the service that lists accounts and groups.

        Returns
        -------
        QueryService
            Newly-created service.
        """
        return QueryService(
            config=self._config,
            directory=self.create_directory(),
            group_store=self.create_group_store(),
            deferred_store=self.create_deferred_store(),
            logger=self._logger,
        )
