"""Map AD bind failures to Win32 status names."""

import re
from typing import Tuple

from ..constants import ERROR_LOGON_FAILURE

# Sub-error codes AD appends to bind failures, e.g. "... data 775, v4563".
AD_ERROR_CODES = {
    0x525: "ERROR_NO_SUCH_USER",
    0x52e: ERROR_LOGON_FAILURE,
    0x530: "ERROR_INVALID_LOGON_HOURS",
    0x531: "ERROR_INVALID_WORKSTATION",
    0x532: "ERROR_PASSWORD_EXPIRED",
    0x533: "ERROR_ACCOUNT_DISABLED",
    0x534: "ERROR_LOGON_TYPE_NOT_GRANTED",
    0x701: "ERROR_ACCOUNT_EXPIRED",
    0x773: "ERROR_PASSWORD_MUST_CHANGE",
    0x775: "ERROR_ACCOUNT_LOCKED_OUT",
}

_SUBCODE_RE = re.compile(r"data\s+([0-9a-fA-F]+)")

LOGON_FAILURE_CODE = 0x52e


def bind_failure_status(error_message: str) -> Tuple[str, int]:
    """
    Map an ldap3 bind error message to (status name, AD sub-error code).

    Messages without a sub-error code, or with one not listed in
    AD_ERROR_CODES, are reported as ERROR_LOGON_FAILURE.
    """
    match = _SUBCODE_RE.search(error_message)
    if not match:
        return ERROR_LOGON_FAILURE, LOGON_FAILURE_CODE
    code = int(match.group(1), 16)
    return AD_ERROR_CODES.get(code, ERROR_LOGON_FAILURE), code
