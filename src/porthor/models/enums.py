"""Enums used in Porthor models."""

from __future__ import annotations

from enum import Enum

__all__ = [
    "IdClass",
    "ProvisionVia",
]


class IdClass(Enum):
    """Class of numeric identifier to allocate."""

    user = "user"
    group = "group"


class ProvisionVia(Enum):
    """Where a provisioned record ended up."""

    directory = "directory"
    fallback = "fallback"
