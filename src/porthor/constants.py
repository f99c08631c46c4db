"""Constants for Porthor."""

__all__ = [
    "ACCOUNT_OBJECT_CLASSES",
    "CONFIG_PATH_ENV",
    "DEFAULT_BASE_DN",
    "DEFAULT_HOMEDIR_BASE",
    "DEFAULT_ID_MAX",
    "DEFAULT_ID_START",
    "DEFAULT_SHELL",
    "ERROR_SUFFIX",
    "GROUPNAME_REGEX",
    "GROUPS_FILE",
    "GROUP_FILE_PREFIX",
    "GROUP_OBJECT_CLASSES",
    "LDAP_TIMEOUT",
    "LDIF_DIR",
    "LDIF_SUFFIX",
    "SALT_LENGTH",
    "SSHA_PREFIX",
]

CONFIG_PATH_ENV = "PORTHOR_CONFIG_PATH"
"""Environment variable naming an optional YAML configuration file."""

DEFAULT_BASE_DN = "dc=homelab,dc=churlet,dc=eu"
"""Base DN of the directory tree if none is configured."""

DEFAULT_HOMEDIR_BASE = "/mnt/pool/users"
"""Parent directory of the home directories of new accounts."""

DEFAULT_SHELL = "/usr/sbin/nologin"
"""Login shell assigned to new accounts."""

LDAP_TIMEOUT = 5.0
"""Timeout (in seconds) for connecting to and querying the directory."""

# The following constants define the default allocation ranges. The start is
# inclusive and the maximum is exclusive.

DEFAULT_ID_START = 3000
"""Default first UID or GID handed out."""

DEFAULT_ID_MAX = 4000
"""Default upper bound (exclusive) of UIDs and GIDs."""

# The following constants describe the entries written to the directory and
# the deferred-import files.

ACCOUNT_OBJECT_CLASSES = ("inetOrgPerson", "posixAccount", "person", "top")
"""Object classes of a new account entry."""

GROUP_OBJECT_CLASSES = ("posixGroup", "top")
"""Object classes of a new group entry."""

SALT_LENGTH = 4
"""Length in bytes of the salt used for SSHA password digests."""

SSHA_PREFIX = "{SSHA}"
"""Scheme prefix of a salted SHA-1 password digest."""

# The following constants define the layout of the local record store.

GROUPS_FILE = "groups.json"
"""Name of the group record store inside the data directory."""

LDIF_DIR = "ldif"
"""Name of the deferred-import directory inside the data directory."""

LDIF_SUFFIX = ".ldif"
"""Suffix of deferred-import entries."""

GROUP_FILE_PREFIX = "group_"
"""Prefix distinguishing group deferred-import entries from accounts."""

ERROR_SUFFIX = ".error.txt"
"""Suffix of error notes written next to deferred-import entries."""

GROUPNAME_REGEX = "^[a-zA-Z][a-zA-Z0-9._-]*$"
"""Regex matching all valid group names."""
