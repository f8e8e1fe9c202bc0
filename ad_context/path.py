"""Conversion between dotted realm names and LDAP DN paths."""

from typing import Iterator, List, Optional

from .constants import DC_FIELD, DN_SEPARATOR


def _tokenize(name: str, sep: str) -> Iterator[str]:
    """Yield the non-empty runs of ``name`` between any of the ``sep`` characters."""
    token: List[str] = []
    for ch in name:
        if ch in sep:
            if token:
                yield "".join(token)
                token = []
        else:
            token.append(ch)
    if token:
        yield "".join(token)


def build_path(name: Optional[str], sep: str, field: str, reverse: bool = False) -> Optional[str]:
    """
    Build an LDAP path from a delimited name.

    Every character of ``sep`` acts as a delimiter; consecutive delimiters
    produce no empty components. Each component is prefixed with ``field``
    and the components are joined with commas.

    Args:
        name: Delimited name, e.g. 'corp.example.com'
        sep: Set of delimiter characters, e.g. '.'
        field: Literal prepended to every component, e.g. 'dc='
        reverse: Emit the components last-to-first

    Returns:
        The path (e.g. 'dc=corp,dc=example,dc=com'), or ``name`` itself when
        it is empty or None. A name made only of delimiters yields ``field``.

    Example:
        >>> build_path("a.b.c", ".", "dc=", reverse=True)
        'dc=c,dc=b,dc=a'
    """
    if not name:
        return name

    parts = [f"{field}{token}" for token in _tokenize(name, sep)]
    if not parts:
        return field
    if reverse:
        parts.reverse()
    return ",".join(parts)


def build_dn(realm: Optional[str]) -> Optional[str]:
    """Convert a realm to a DN (e.g., 'corp.example.com' -> 'dc=corp,dc=example,dc=com')"""
    return build_path(realm, DN_SEPARATOR, DC_FIELD)


def build_domain(dn: Optional[str]) -> Optional[str]:
    """
    Convert a DN of the form 'DC=AA,DC=BB,DC=CC' back to the DNS name 'aa.bb.cc'.

    This is a textual substitution, not a DN parser: the input is lower-cased,
    every 'dc=' is removed and every comma becomes a period. Any other RDN, or
    a value that itself contains 'dc=', gives a wrong (but well-formed) string.
    """
    if dn is None:
        return None
    return dn.lower().replace(DC_FIELD, "").replace(",", DN_SEPARATOR)
