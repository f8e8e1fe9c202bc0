"""Policy source: INI-backed connection defaults."""

import configparser
import logging
from typing import Optional, Protocol

from .constants import (
    AuthFlags,
    DEFAULT_LDAP_PAGE_SIZE,
    DEFAULT_SASL_WRAPPING,
    NO_FLAGS,
)
from .errors import PolicyError

logger = logging.getLogger(__name__)

SECTION = "global"
SASL_WRAPPING_KEY = "client ldap sasl wrapping"
PAGE_SIZE_KEY = "ldap page size"

SASL_WRAPPING_VALUES = {
    "plain": NO_FLAGS,
    "sign": AuthFlags.SASL_SIGN,
    "seal": AuthFlags.SASL_SEAL,
}


DEFAULT_CONFIG_TEMPLATE = """\
# ad_context policy file
# ----------------------
# Values queried once for every new connection context.

[global]
# SASL wrapping requested by default: plain, sign or seal
client ldap sasl wrapping = sign
# Number of entries requested per page of a paged LDAP search.
# Halved by the transport whenever the server reports a time limit.
ldap page size = 1000
"""


class PolicySource(Protocol):
    """Anything that can supply the per-connection defaults."""

    def client_ldap_sasl_wrapping(self) -> AuthFlags:
        """Return the default wrap flags; raise PolicyError if unset or invalid."""
        ...

    def ldap_page_size(self) -> int:
        ...


class IniPolicy:
    """
    Policy values read from the [global] section of an INI file.

    Example:
        policy = load_policy('/etc/ad_context.conf')
        ctx = ConnectionContext.init('CORP.EXAMPLE.COM', 'CORP', None, SaslState.PLAIN, policy)
    """

    def __init__(self, parser: Optional[configparser.ConfigParser] = None):
        self._parser = parser or configparser.ConfigParser()

    @classmethod
    def from_string(cls, text: str) -> "IniPolicy":
        parser = configparser.ConfigParser()
        parser.read_string(text)
        return cls(parser)

    def client_ldap_sasl_wrapping(self) -> AuthFlags:
        value = self._parser.get(SECTION, SASL_WRAPPING_KEY, fallback=DEFAULT_SASL_WRAPPING)
        try:
            return SASL_WRAPPING_VALUES[value.strip().lower()]
        except KeyError:
            raise PolicyError(f"invalid value for '{SASL_WRAPPING_KEY}': {value!r}") from None

    def ldap_page_size(self) -> int:
        try:
            size = self._parser.getint(SECTION, PAGE_SIZE_KEY, fallback=DEFAULT_LDAP_PAGE_SIZE)
        except ValueError:
            logger.warning("Ignoring non-numeric '%s'; using %d", PAGE_SIZE_KEY, DEFAULT_LDAP_PAGE_SIZE)
            return DEFAULT_LDAP_PAGE_SIZE
        if size < 1:
            logger.warning("Ignoring '%s' = %d; using %d", PAGE_SIZE_KEY, size, DEFAULT_LDAP_PAGE_SIZE)
            return DEFAULT_LDAP_PAGE_SIZE
        return size


def load_policy(config_path: Optional[str] = None) -> IniPolicy:
    """
    Load policy values from an INI file.

    A missing path or file yields the built-in defaults.
    """
    parser = configparser.ConfigParser()
    if config_path:
        found = parser.read(config_path)
        if not found:
            logger.debug("Policy file %s not found; using defaults", config_path)
    return IniPolicy(parser)


def generate_config_file(output_path: Optional[str] = None) -> str:
    """Generate a template policy file."""
    if output_path:
        with open(output_path, 'w') as f:
            f.write(DEFAULT_CONFIG_TEMPLATE)
        return f"Policy template written to: {output_path}"
    else:
        return DEFAULT_CONFIG_TEMPLATE
