"""General utility functions."""

from __future__ import annotations

import base64
import hashlib
import os
import re
import unicodedata

from .constants import GROUPNAME_REGEX, SALT_LENGTH, SSHA_PREFIX
from .exceptions import InvalidNameError

__all__ = [
    "derive_username",
    "hash_password",
    "is_valid_group_name",
    "normalize_name",
]


def normalize_name(name: str) -> str:
    """Reduce a personal name to lower-case ASCII letters and digits.

    Parameters
    ----------
    name
        Name as entered by the user, possibly with accents, spaces, or
        punctuation.

    Returns
    -------
    str
        The name with diacritics removed, all other non-alphanumeric
        characters dropped, and lower-cased.

    Examples
    --------
    >>> normalize_name("Émilie")
    'emilie'
    >>> normalize_name("Jean-Luc O'Neil")
    'jeanluconeil'
    """
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[^a-z0-9]", "", stripped.lower())


def derive_username(first_name: str, last_name: str) -> str:
    """Derive the login name for a new account.

    The login name is the normalized first name followed by the first
    character of the normalized last name. Collisions with existing accounts
    are not checked.

    Parameters
    ----------
    first_name
        First name of the person.
    last_name
        Last name of the person, possibly empty.

    Returns
    -------
    str
        Derived login name.

    Raises
    ------
    InvalidNameError
        Raised if nothing is left of the name after normalization.
    """
    first = normalize_name(first_name)
    last = normalize_name(last_name)
    username = first + last[:1]
    if not username:
        msg = f"Cannot derive a login name from {first_name!r} {last_name!r}"
        raise InvalidNameError(msg)
    return username


def hash_password(secret: bytes | str) -> str:
    """Compute a salted SHA-1 digest of a password.

    SHA-1 is weak by modern standards, but ``{SSHA}`` is the scheme every
    LDAP server understands for ``userPassword``. A new random salt is used
    for each call, so hashing the same password twice gives different
    results.

    Parameters
    ----------
    secret
        Plaintext password. Strings are encoded as UTF-8.

    Returns
    -------
    str
        ``{SSHA}`` followed by the base64 encoding of the digest and salt.
    """
    if isinstance(secret, str):
        secret = secret.encode()
    salt = os.urandom(SALT_LENGTH)
    digest = hashlib.sha1(secret + salt).digest()
    return SSHA_PREFIX + base64.b64encode(digest + salt).decode()


def is_valid_group_name(name: str) -> bool:
    """Return whether the given name is a valid group name.

    Parameters
    ----------
    name
        Group name to check.
    """
    return re.match(GROUPNAME_REGEX, name) is not None
