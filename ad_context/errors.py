"""Exception hierarchy for ad_context."""

from typing import Optional


class ADContextError(Exception):
    """Base class for all errors raised by this package."""


class PolicyError(ADContextError):
    """A policy source could not supply a valid value."""


class ContextReleasedError(ADContextError):
    """An owned connection context was used after destroy()."""


class TransportError(ADContextError):
    """
    The LDAP transport failed to connect or bind.

    Attributes:
        status: Win32 status name (e.g. 'ERROR_ACCOUNT_LOCKED_OUT')
        status_code: AD sub-error code parsed from the server message, if any
    """

    def __init__(self, message: str, status: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.status_code = status_code
