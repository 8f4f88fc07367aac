"""Fixed-point helpers for token amounts."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def format_token_amount(value: int, decimals: int = 6) -> str:
    """Render an integer amount as a trimmed fixed-point decimal string.

    >>> format_token_amount(1_500_000)
    '1.5'
    >>> format_token_amount(0)
    '0'
    """

    if decimals < 0:
        raise ValueError("decimals must not be negative")
    sign = "-" if value < 0 else ""
    magnitude = abs(int(value))
    base = 10**decimals
    integer_part, fractional_part = divmod(magnitude, base)
    if fractional_part == 0:
        return f"{sign}{integer_part}"
    fractional = str(fractional_part).rjust(decimals, "0").rstrip("0")
    return f"{sign}{integer_part}.{fractional}"


def parse_integer_amount(raw: Any) -> int:
    """Parse an arbitrary-precision integer from an int or decimal string."""

    if isinstance(raw, bool):
        raise ValueError(f"not an integer amount: {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        if text.lstrip("-").isdigit():
            return int(text)
    raise ValueError(f"not an integer amount: {raw!r}")


def parse_amount_or_zero(raw: Any, *, context: str = "") -> int:
    """Parse ``raw`` and fall back to zero with a warning when it is malformed."""

    try:
        return parse_integer_amount(raw)
    except ValueError:
        logger.warning("Failed to parse amount %r%s; using 0", raw, f" ({context})" if context else "")
        return 0
