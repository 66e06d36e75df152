"""Extraction of revert reasons from failed-execution errors."""
from __future__ import annotations

import re

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_bytes

ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")

_ENFORCER_REASON = re.compile(r"[A-Z][A-Za-z0-9]*Enforcer:[a-z-]+", re.IGNORECASE)
_ERROR_STRING_DATA = re.compile(r"0x08c379a0[0-9a-fA-F]*")


def decode_error_string(data: bytes) -> str | None:
    """Decode ``Error(string)`` revert data, or return None if it is not one."""
    if len(data) < 4 or data[:4] != ERROR_STRING_SELECTOR:
        return None
    try:
        (reason,) = decode(["string"], data[4:])
    except (DecodingError, ValueError, OverflowError):
        return None
    return reason


def extract_revert_reason(error: str | bytes | None) -> str | None:
    """Return the most specific revert reason found in *error*.

    *error* may be free-form error text or raw revert data. An
    ``<Name>Enforcer:<reason>`` token wins; otherwise any ``Error(string)``
    payload found is decoded.
    """
    if error is None:
        return None
    if isinstance(error, (bytes, bytearray)):
        reason = decode_error_string(bytes(error))
        if not reason:
            return None
        return _extract_from_text(reason) or reason
    return _extract_from_text(str(error))


def _extract_from_text(text: str) -> str | None:
    match = _ENFORCER_REASON.search(text)
    if match:
        return match.group(0)
    for hex_data in _ERROR_STRING_DATA.findall(text):
        if len(hex_data) % 2:
            hex_data = hex_data[:-1]
        reason = decode_error_string(to_bytes(hexstr=hex_data))
        if reason:
            enforcer = _ENFORCER_REASON.search(reason)
            return enforcer.group(0) if enforcer else reason
    return None
