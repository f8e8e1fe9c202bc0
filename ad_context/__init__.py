"""
ad_context - Active Directory connection context

Builds LDAP DN paths from realm names (and back), and holds the server,
authentication and session state of a connection to an AD-compatible LDAP
server.
"""

__version__ = "1.0.0"

from .constants import AuthFlags, SaslState, SASL_WRAP_FLAGS, DEFAULT_LDAP_PAGE_SIZE
from .errors import ADContextError, PolicyError, ContextReleasedError, TransportError
from .path import build_path, build_dn, build_domain
from .models import Ownership, ServerInfo, AuthInfo, ConfigInfo
from .config import PolicySource, IniPolicy, load_policy, generate_config_file
from .context import ConnectionContext, ContextRef, set_sasl_wrap_flags, destroy
from .ldap import LdapTransport, AD_ERROR_CODES
from .log_config import setup_logging

__all__ = [
    # Version
    "__version__",
    # Constants
    "AuthFlags",
    "SaslState",
    "SASL_WRAP_FLAGS",
    "DEFAULT_LDAP_PAGE_SIZE",
    # Errors
    "ADContextError",
    "PolicyError",
    "ContextReleasedError",
    "TransportError",
    # Paths
    "build_path",
    "build_dn",
    "build_domain",
    # Models
    "Ownership",
    "ServerInfo",
    "AuthInfo",
    "ConfigInfo",
    # Policy
    "PolicySource",
    "IniPolicy",
    "load_policy",
    "generate_config_file",
    # Context
    "ConnectionContext",
    "ContextRef",
    "set_sasl_wrap_flags",
    "destroy",
    # LDAP
    "LdapTransport",
    "AD_ERROR_CODES",
    # Logging
    "setup_logging",
]
