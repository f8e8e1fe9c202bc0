"""LDAP transport for a ConnectionContext."""

from .errors import AD_ERROR_CODES, bind_failure_status
from .connection import LdapTransport, clean_username

__all__ = [
    "AD_ERROR_CODES",
    "bind_failure_status",
    "LdapTransport",
    "clean_username",
]
