"""Command encoder for the GA II controller.

Commands are written as hex strings (``"018a00000002013a"``) and sent as
one fixed-size report: decoded bytes left-aligned, zero-filled to
``REPORT_LENGTH``.  Payloads longer than a report are truncated.
"""

from __future__ import annotations

import logging
import re
import string

from .constants import CMD_PWM_SYNC_ENABLE, CMD_QUERY_TEMPERATURE, REPORT_LENGTH
from .exceptions import InvalidEncoding

log = logging.getLogger(__name__)

# Characters allowed between hex digits ("01 8a", "01:8a", "01-8a", ...)
_SEPARATORS = re.compile(r"[\s:,\-_]+")
_HEX_PREFIX = re.compile(r"0[xX]")
_HEX_DIGITS = frozenset(string.hexdigits)


def _strip_separators(command: str) -> str:
    """Remove separators and per-token ``0x`` prefixes."""
    tokens = _SEPARATORS.split(command.strip())
    return "".join(
        tok[2:] if _HEX_PREFIX.match(tok) else tok
        for tok in tokens
    )


def fit_report(data: bytes, length: int = REPORT_LENGTH) -> bytes:
    """Pad with zeros or truncate *data* to exactly *length* bytes."""
    if len(data) > length:
        log.debug("Truncating %d-byte payload to %d-byte report", len(data), length)
        return bytes(data[:length])
    return bytes(data) + b'\x00' * (length - len(data))


def encode_command(command: str, length: int = REPORT_LENGTH) -> bytes:
    """Encode a hex command string into one report.

    Args:
        command: Hex digits, optionally separated by whitespace, ``:``,
            ``-``, ``,`` or ``_``.  Tokens may carry a ``0x`` prefix.
        length: Report length in bytes.

    Returns:
        ``length`` bytes: the decoded command followed by zero padding.

    Raises:
        InvalidEncoding: Empty string, non-hex characters, or an odd
            number of hex digits.
    """
    if not command or not command.strip():
        raise InvalidEncoding("Empty command string")

    digits = _strip_separators(command)
    if not digits:
        raise InvalidEncoding(f"No hex digits in command {command!r}")

    bad = sorted({c for c in digits if c not in _HEX_DIGITS})
    if bad:
        raise InvalidEncoding(
            f"Invalid hex character(s) {''.join(bad)!r} in command {command!r}"
        )
    if len(digits) % 2:
        raise InvalidEncoding(
            f"Odd number of hex digits ({len(digits)}) in command {command!r}"
        )

    return fit_report(bytes.fromhex(digits), length)


# Operational reports (precomputed once)
PWM_SYNC_ENABLE_REPORT = encode_command(CMD_PWM_SYNC_ENABLE)
QUERY_TEMPERATURE_REPORT = encode_command(CMD_QUERY_TEMPERATURE)
