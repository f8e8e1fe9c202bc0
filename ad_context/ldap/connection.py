"""LdapTransport: the ldap3 session behind a ConnectionContext."""

import logging
from typing import Any, Dict, List, Optional

from ldap3 import (
    ALL,
    ANONYMOUS,
    AUTO_BIND_NO_TLS,
    AUTO_BIND_NONE,
    AUTO_BIND_TLS_BEFORE_BIND,
    NTLM,
    SIMPLE,
    SUBTREE,
    SYNC,
    Connection,
    Server,
)
from ldap3.core.exceptions import LDAPBindError, LDAPSocketOpenError, LDAPStartTLSError
from ldap3.core.results import RESULT_TIME_LIMIT_EXCEEDED

from ..constants import (
    ERROR_ENCRYPTION_FAILED,
    ERROR_HOST_UNREACHABLE,
    ERROR_TIMEOUT,
    LDAP_PORT,
    LDAPS_PORT,
    PAGED_RESULTS_OID,
    AuthFlags,
)
from ..context import ConnectionContext
from ..errors import TransportError
from ..path import build_dn, build_domain
from .errors import bind_failure_status

logger = logging.getLogger(__name__)


def clean_username(username: str) -> str:
    """Strip any existing domain prefix or UPN suffix from a username."""
    if "\\" in username:
        return username.partition("\\")[2]
    return username.partition("@")[0] or username


def _first(values: Any) -> Optional[str]:
    """First value of a multi-valued rootDSE attribute, if any."""
    if not values:
        return None
    if isinstance(values, (list, tuple)):
        return str(values[0])
    return str(values)


class LdapTransport:
    """
    ldap3 connection driven by the settings of a ConnectionContext.

    The transport registers itself with the context on construction, so
    destroy() on the context disconnects it. It fills in the config fields
    learned from the server's rootDSE once connected.

    Attributes:
        context: The ConnectionContext this transport serves
        server: The ldap3 Server object (None until connect() is called)
        connection: The ldap3 Connection object (None until connect() is called)

    Example:
        ctx = ConnectionContext.init('CORP.EXAMPLE.COM', 'CORP', 'dc01.corp.example.com', SaslState.SEAL)
        ctx.auth.user_name, ctx.auth.password = 'admin', 'password'
        with LdapTransport(ctx) as ldap:
            users = ldap.search('(objectClass=user)', ['sAMAccountName'])
    """

    def __init__(
        self,
        context: ConnectionContext,
        use_ssl: bool = False,
        port: int = None,
        client_strategy: str = SYNC,
    ):
        self.context = context
        self.use_ssl = use_ssl
        self.port = port or (LDAPS_PORT if use_ssl else LDAP_PORT)
        self.client_strategy = client_strategy

        self.server: Optional[Server] = None
        self.connection: Optional[Connection] = None

        context.attach_transport(self)

    def server_host(self) -> str:
        """The explicit LDAP server if set, otherwise the realm."""
        host = self.context.server.ldap_server or self.context.server.realm
        if not host:
            raise ValueError("Cannot determine LDAP server: neither ldap_server nor realm is set.")
        return host

    def _auth_params(self) -> Dict[str, Any]:
        """Build Connection() authentication parameters from the context's auth flags."""
        auth = self.context.auth
        flags = auth.flags

        if flags & AuthFlags.ANON_BIND or not auth.user_name:
            return {"authentication": ANONYMOUS}

        if flags & AuthFlags.SIMPLE_BIND:
            return {"user": auth.user_name, "password": auth.password, "authentication": SIMPLE}

        workgroup = self.context.server.workgroup
        if workgroup:
            return {
                "user": f"{workgroup}\\{clean_username(auth.user_name)}",
                "password": auth.password,
                "authentication": NTLM,
            }

        return {"user": auth.user_name, "password": auth.password}

    def _requires_tls(self) -> bool:
        """Sealing is provided by TLS: StartTLS unless the connection is already LDAPS."""
        return bool(self.context.auth.flags & AuthFlags.SASL_SEAL) and not self.use_ssl

    def _auto_bind_mode(self) -> str:
        """Pick the ldap3 auto_bind mode for the context's flags."""
        if self.context.auth.flags & AuthFlags.NO_BIND:
            return AUTO_BIND_NONE
        if self._requires_tls():
            return AUTO_BIND_TLS_BEFORE_BIND
        return AUTO_BIND_NO_TLS

    def connect(self) -> "LdapTransport":
        """
        Establish the LDAP connection. Returns self for chaining.

        An existing connection is closed first. With SASL_SEAL set on a plain
        LDAP port, StartTLS is negotiated before binding.
        """
        if self.connection:
            self.disconnect()

        host = self.server_host()
        auto_bind = self._auto_bind_mode()

        self.server = Server(host, port=self.port, use_ssl=self.use_ssl, get_info=ALL)
        try:
            self.connection = Connection(
                self.server,
                auto_bind=auto_bind,
                client_strategy=self.client_strategy,
                **self._auth_params(),
            )
            if auto_bind == AUTO_BIND_NONE:
                self.connection.open()
                if self._requires_tls() and not self.connection.start_tls():
                    raise LDAPStartTLSError("server refused StartTLS")
        except LDAPBindError as e:
            self.connection = None
            status, code = bind_failure_status(str(e))
            raise TransportError(f"Bind to {host} failed: {status}", status, code) from e
        except LDAPSocketOpenError as e:
            self.connection = None
            raise TransportError(f"Could not connect to {host}: {e}", ERROR_HOST_UNREACHABLE) from e
        except LDAPStartTLSError as e:
            self.disconnect()
            raise TransportError(f"StartTLS with {host} failed: {e}", ERROR_ENCRYPTION_FAILED) from e

        try:
            self._learn_server_details(host)
        except ValueError:
            self.disconnect()
            raise

        logger.info("Connected to %s (bind path %s)", host, self.context.config.bind_path)
        return self

    def _learn_server_details(self, host: str) -> None:
        """Fill the context's config fields from the rootDSE, falling back to the realm."""
        config = self.context.config
        info = self.server.info if self.server else None
        other = info.other if info else {}

        config.ldap_server_name = _first(other.get("dnsHostName")) or host
        config.bind_path = _first(other.get("defaultNamingContext")) or build_dn(self.context.server.realm)
        if not config.bind_path:
            raise ValueError(
                "Cannot determine bind path. Set a realm or ensure the server "
                "exposes defaultNamingContext."
            )
        config.realm = build_domain(config.bind_path).upper()
        config.schema_path = _first(other.get("schemaNamingContext"))
        config.config_path = _first(other.get("configurationNamingContext"))

    def disconnect(self) -> None:
        """Close the LDAP connection. Safe to call when never connected."""
        if self.connection:
            self.connection.unbind()
            self.connection = None
            logger.info("Disconnected from %s", self.context.config.ldap_server_name or "server")

    def __enter__(self) -> "LdapTransport":
        """Context manager entry."""
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Context manager exit."""
        self.disconnect()
        return False

    def search(
        self,
        search_filter: str,
        attributes: List[str],
        search_base: str = None,
        scope=SUBTREE,
    ) -> List[Any]:
        """
        Perform a paged LDAP search.

        Pages are sized by the context's ldap_page_size. If the server reports
        a time limit, the page size is halved and the search retried once.

        Args:
            search_filter: LDAP filter string
            attributes: List of attributes to retrieve
            search_base: Override the search base (defaults to the context's bind path)
            scope: Search scope (SUBTREE, BASE, LEVEL)

        Returns:
            List of ldap3 Entry objects
        """
        if not self.connection:
            raise RuntimeError("Not connected. Call connect() first or use as context manager.")

        base = search_base or self.context.config.bind_path
        entries = self._paged_search(base, search_filter, attributes, scope)
        if entries is None:
            self.context.reduce_page_size()
            entries = self._paged_search(base, search_filter, attributes, scope)
        if entries is None:
            raise TransportError(f"Search of {base} exceeded the server time limit", ERROR_TIMEOUT)
        return entries

    def _paged_search(self, base: str, search_filter: str, attributes: List[str], scope) -> Optional[List[Any]]:
        """Collect every page of a search; None if the server hit its time limit."""
        entries: List[Any] = []
        cookie = None
        while True:
            self.connection.search(
                search_base=base,
                search_filter=search_filter,
                search_scope=scope,
                attributes=attributes,
                paged_size=self.context.config.ldap_page_size,
                paged_cookie=cookie,
            )
            result = self.connection.result or {}
            if result.get("result") == RESULT_TIME_LIMIT_EXCEEDED:
                logger.warning("Time limit exceeded searching %s", base)
                return None
            entries.extend(self.connection.entries)

            cookie = (
                result.get("controls", {})
                .get(PAGED_RESULTS_OID, {})
                .get("value", {})
                .get("cookie")
            )
            if not cookie:
                return entries
