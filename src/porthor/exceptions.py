"""Exceptions for Porthor."""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "ConfigError",
    "DuplicateError",
    "IncompleteSearchError",
    "InvalidNameError",
    "MaterialLoadError",
    "NotConfiguredError",
    "NotFoundError",
    "PorthorError",
    "RangeExhaustedError",
    "StoreError",
    "TransportError",
]


class PorthorError(Exception):
    """Base class for all Porthor errors.

    The command-line interface turns any exception derived from this class
    into a clean error message rather than a traceback.
    """


class ConfigError(PorthorError):
    """The configuration is missing a setting required by the operation."""


class DuplicateError(PorthorError):
    """A record with the same name already exists in the local store."""


class InvalidNameError(PorthorError, ValueError):
    """A login or group name is empty or contains invalid characters."""


class NotConfiguredError(PorthorError):
    """The operation requires a directory but none is configured."""


class NotFoundError(PorthorError):
    """The named record does not exist."""


class RangeExhaustedError(PorthorError):
    """Every identifier in the allocation range has been used.

    Parameters
    ----------
    id_class
        Class of identifier (``user`` or ``group``) that ran out.
    start
        Inclusive start of the range.
    maximum
        Exclusive end of the range.
    """

    def __init__(self, id_class: str, start: int, maximum: int) -> None:
        msg = f"No {id_class} IDs available in range [{start}, {maximum})"
        super().__init__(msg)
        self.id_class = id_class
        self.start = start
        self.maximum = maximum


class StoreError(PorthorError):
    """The local record store could not be read or written."""


class TransportError(PorthorError):
    """An operation against the directory failed.

    Covers connection, bind, search, add, modify, and delete failures. The
    string form of the underlying exception is kept as ``detail`` so that it
    can be saved as an error note next to a deferred-import entry.

    Parameters
    ----------
    message
        Summary of the failed operation.
    detail
        Raw error text from the directory client, if any.
    """

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(f"{message}: {detail}" if detail else message)
        self.detail = detail or message


class IncompleteSearchError(TransportError):
    """A directory search returned only part of the matching entries.

    This happens when the server enforces a size or time limit. Identifier
    allocation cannot proceed on a partial view of the directory, so unlike
    other search failures this is not recovered by using the local store.
    """


class MaterialLoadError(PorthorError):
    """A CA, certificate, or key file for the directory could not be read.

    This is never raised by the transport configuration. It is carried as
    the diagnostic of a failed `~porthor.models.transport.MaterialLoad` so
    that the failure can be logged and the material omitted.

    Parameters
    ----------
    kind
        Kind of material (``ca``, ``cert``, or ``key``).
    path
        Path that could not be read.
    reason
        Why the file could not be read.
    """

    def __init__(self, kind: str, path: Path, reason: str) -> None:
        super().__init__(f"Cannot read {kind} file {path}: {reason}")
        self.kind = kind
        self.path = path
        self.reason = reason
