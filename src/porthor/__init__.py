"""Provision POSIX accounts and groups into an LDAP directory."""
