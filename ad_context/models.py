"""Field groups held by a connection context."""

from dataclasses import dataclass, asdict, fields
from enum import Enum
from typing import Any, Dict, Optional

from .constants import NO_FLAGS, AuthFlags


class Ownership(Enum):
    """Who is responsible for the context storage once it is destroyed."""
    OWNED = "owned"        # created by ConnectionContext.init(), released by destroy()
    BORROWED = "borrowed"  # caller-supplied storage, only zeroed by destroy()


@dataclass
class ServerInfo:
    """Identity of the target domain and server."""
    realm: Optional[str] = None
    workgroup: Optional[str] = None
    ldap_server: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AuthInfo:
    """Authentication mode and credentials."""
    flags: AuthFlags = NO_FLAGS
    realm: Optional[str] = None
    password: Optional[str] = None
    user_name: Optional[str] = None
    kdc_server: Optional[str] = None
    ccache_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["flags"] = int(self.flags)
        # Never expose the secret itself
        d["password"] = "********" if self.password else None
        return d


@dataclass
class ConfigInfo:
    """Session tuning parameters, mostly filled in by the transport."""
    ldap_page_size: int = 0
    bind_path: Optional[str] = None
    realm: Optional[str] = None
    ldap_server_name: Optional[str] = None
    server_site_name: Optional[str] = None
    client_site_name: Optional[str] = None
    schema_path: Optional[str] = None
    config_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def string_fields(group: Any) -> Dict[str, Optional[str]]:
    """Return the optional string fields of a field group, keyed by name."""
    return {
        f.name: getattr(group, f.name)
        for f in fields(group)
        if f.name not in ("flags", "ldap_page_size")
    }
