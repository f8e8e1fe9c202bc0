"""Constants used throughout the library."""

from enum import Enum, IntFlag


class AuthFlags(IntFlag):
    """Authentication mode and SASL wrapping bits of a connection context."""
    DISABLE_KERBEROS = 0x0001
    NO_BIND = 0x0002
    ANON_BIND = 0x0004
    SIMPLE_BIND = 0x0008
    ALLOW_NTLMSSP = 0x0010
    SASL_SIGN = 0x0020
    SASL_SEAL = 0x0040
    SASL_FORCE = 0x0080
    USER_CREDS = 0x0100


# The two bits owned by set_sasl_wrap_flags(); every other bit is left alone.
SASL_WRAP_FLAGS = AuthFlags.SASL_SIGN | AuthFlags.SASL_SEAL

NO_FLAGS = AuthFlags(0)


class SaslState(Enum):
    """Requested SASL protection level for a new connection."""
    PLAIN = "plain"
    SIGN = "sign"
    SEAL = "seal"


SASL_STATE_FLAGS = {
    SaslState.PLAIN: NO_FLAGS,
    SaslState.SIGN: AuthFlags.SASL_SIGN,
    SaslState.SEAL: AuthFlags.SASL_SEAL,
}

# Path building
DN_SEPARATOR = "."
DC_FIELD = "dc="

# Policy defaults
DEFAULT_LDAP_PAGE_SIZE = 1000
DEFAULT_SASL_WRAPPING = "sign"

LDAP_PORT = 389
LDAPS_PORT = 636

# Microsoft Win32 error names reported by the transport
ERROR_LOGON_FAILURE = "ERROR_LOGON_FAILURE"
ERROR_HOST_UNREACHABLE = "ERROR_HOST_UNREACHABLE"
ERROR_ENCRYPTION_FAILED = "ERROR_ENCRYPTION_FAILED"
ERROR_TIMEOUT = "ERROR_TIMEOUT"

# Paged results control (RFC 2696)
PAGED_RESULTS_OID = "1.2.840.113556.1.4.319"
