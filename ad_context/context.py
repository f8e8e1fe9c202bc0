"""ConnectionContext: per-connection state for an Active Directory session."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, TYPE_CHECKING, Union

from .config import PolicySource, load_policy
from .constants import (
    DEFAULT_LDAP_PAGE_SIZE,
    NO_FLAGS,
    SASL_STATE_FLAGS,
    SASL_WRAP_FLAGS,
    AuthFlags,
    SaslState,
)
from .errors import ContextReleasedError, PolicyError
from .models import AuthInfo, ConfigInfo, Ownership, ServerInfo, string_fields

if TYPE_CHECKING:
    from .ldap import LdapTransport

logger = logging.getLogger(__name__)


class ConnectionContext:
    """
    Server identity, authentication mode and session settings for one AD connection.

    A context is created once per logical connection, handed to the transport
    which fills in the remaining fields, and torn down exactly once through
    destroy(). Contexts are not thread-safe; callers sharing one must
    serialize access themselves.

    Attributes:
        server: Target realm, workgroup and LDAP server
        auth: Authentication flags and credentials
        config: Page size, bind path and other values learned from the server
        transport: Attached LdapTransport, torn down by destroy()

    Example:
        ref = ContextRef(ConnectionContext.init('CORP.EXAMPLE.COM', 'CORP', None, SaslState.SIGN))
        ...
        destroy(ref)   # ref.context is now None
    """

    def __init__(self, ownership: Ownership = Ownership.OWNED):
        self._ownership = ownership
        self._released = False
        self._zero()

    def _zero(self) -> None:
        self.server = ServerInfo()
        self.auth = AuthInfo()
        self.config = ConfigInfo()
        self.transport: Optional["LdapTransport"] = None

    @classmethod
    def init(
        cls,
        realm: Optional[str],
        workgroup: Optional[str],
        ldap_server: Optional[str],
        sasl_state: SaslState = SaslState.PLAIN,
        policy: Optional[PolicySource] = None,
    ) -> "ConnectionContext":
        """
        Create a new context owned by the caller of destroy().

        Args:
            realm: Kerberos realm / DNS domain (e.g. 'CORP.EXAMPLE.COM')
            workgroup: NetBIOS domain name (e.g. 'CORP')
            ldap_server: Explicit domain controller to use, if any
            sasl_state: Protection level added on top of the policy default
            policy: Source of default wrap flags and page size (default: built-in defaults)
        """
        ctx = cls(Ownership.OWNED)
        ctx._setup(realm, workgroup, ldap_server, sasl_state, policy)
        return ctx

    @classmethod
    def init_borrowed(
        cls,
        storage: "ConnectionContext",
        realm: Optional[str],
        workgroup: Optional[str],
        ldap_server: Optional[str],
        sasl_state: SaslState = SaslState.PLAIN,
        policy: Optional[PolicySource] = None,
    ) -> "ConnectionContext":
        """
        Initialise caller-supplied storage in place.

        destroy() zeroes a borrowed context but leaves it usable, so the same
        storage can be initialised again.
        """
        if storage._released:
            raise ContextReleasedError("cannot reuse storage of a released owned context")
        storage._ownership = Ownership.BORROWED
        storage._zero()
        storage._setup(realm, workgroup, ldap_server, sasl_state, policy)
        return storage

    def _setup(
        self,
        realm: Optional[str],
        workgroup: Optional[str],
        ldap_server: Optional[str],
        sasl_state: SaslState,
        policy: Optional[PolicySource],
    ) -> None:
        self.server = ServerInfo(realm=realm, workgroup=workgroup, ldap_server=ldap_server)

        if policy is None:
            policy = load_policy()

        try:
            flags = policy.client_ldap_sasl_wrapping()
        except PolicyError as e:
            logger.warning("Could not resolve default SASL wrapping, using none: %s", e)
            flags = NO_FLAGS
        self.auth.flags = AuthFlags(int(flags) | int(SASL_STATE_FLAGS[sasl_state]))

        # Start with the configured page size; the transport halves it on timeouts.
        try:
            self.config.ldap_page_size = policy.ldap_page_size()
        except PolicyError as e:
            logger.warning("Could not resolve LDAP page size, using %d: %s", DEFAULT_LDAP_PAGE_SIZE, e)
            self.config.ldap_page_size = DEFAULT_LDAP_PAGE_SIZE

        logger.debug(
            "Initialised %s context for realm=%s workgroup=%s server=%s flags=0x%x",
            self._ownership.value, realm, workgroup, ldap_server, int(self.auth.flags),
        )

    @property
    def ownership(self) -> Ownership:
        return self._ownership

    @property
    def owns_self(self) -> bool:
        """True if destroy() releases this context rather than only zeroing it."""
        return self._ownership is Ownership.OWNED

    @property
    def is_released(self) -> bool:
        return self._released

    def _check_live(self) -> None:
        if self._released:
            raise ContextReleasedError("connection context has been destroyed")

    def set_sasl_wrap_flags(self, flags: Union[AuthFlags, int]) -> bool:
        """Replace the SASL sign/seal bits with ``flags``, keeping every other bit."""
        self._check_live()
        other_flags = int(self.auth.flags) & ~int(SASL_WRAP_FLAGS)
        self.auth.flags = AuthFlags(int(flags) | other_flags)
        return True

    def attach_transport(self, transport: "LdapTransport") -> None:
        """
        Register the transport whose disconnect() runs during destroy().

        A different transport already attached is disconnected first.
        """
        self._check_live()
        if self.transport is not None and self.transport is not transport:
            logger.debug("Replacing attached transport; disconnecting the previous one")
            self.transport.disconnect()
        self.transport = transport

    def reduce_page_size(self) -> int:
        """Halve the LDAP page size (never below 1) and return the new value."""
        self._check_live()
        self.config.ldap_page_size = max(1, self.config.ldap_page_size // 2)
        logger.info("Reduced LDAP page size to %d", self.config.ldap_page_size)
        return self.config.ldap_page_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ownership": self._ownership.value,
            "server": self.server.to_dict(),
            "auth": self.auth.to_dict(),
            "config": self.config.to_dict(),
        }

    def _destroy(self) -> None:
        if self._released:
            return
        owned = self.owns_self
        held = sum(
            value is not None
            for group in (self.server, self.auth, self.config)
            for value in string_fields(group).values()
        )
        try:
            if self.transport is not None:
                self.transport.disconnect()
        finally:
            self._zero()
            if owned:
                self._released = True
        logger.debug(
            "Destroyed %s connection context (%d string fields released)",
            "owned" if owned else "borrowed", held,
        )

    def __enter__(self) -> "ConnectionContext":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Context manager exit."""
        destroy(ContextRef(self))
        return False


@dataclass
class ContextRef:
    """Caller-held handle to a context; destroy() clears it."""
    context: Optional[ConnectionContext] = None


def set_sasl_wrap_flags(context: Optional[ConnectionContext], flags: Union[AuthFlags, int]) -> bool:
    """
    Replace the SASL sign/seal bits of ``context`` with ``flags``.

    Returns:
        False if no context was given or it has already been destroyed,
        True otherwise
    """
    if context is None or context.is_released:
        return False
    return context.set_sasl_wrap_flags(flags)


def destroy(ref: Optional[ContextRef]) -> None:
    """
    Tear down the context held by ``ref`` and clear the handle.

    Disconnects any attached transport, then resets every field. An owned
    context is marked released; a borrowed one stays zeroed for reuse.
    Calling destroy() again on the same handle does nothing.
    """
    if ref is None or ref.context is None:
        return
    try:
        ref.context._destroy()
    finally:
        ref.context = None
