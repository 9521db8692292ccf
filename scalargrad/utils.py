"""Shared utilities for scalargrad."""

import logging
from decimal import Decimal, InvalidOperation

logger = logging.getLogger(__name__)


def to_decimal(value) -> Decimal:
    """
    Coerce a plain number to Decimal.

    Floats go through str() so 0.01 stays 0.01 instead of its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("booleans are not numbers here")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"not a decimal number: {value!r}") from None
    raise TypeError(f"cannot convert {type(value).__name__} to Decimal")


def parse_int_list(content: str) -> list[int]:
    """
    Parse a comma-separated list of ints ("3,3,1" -> [3, 3, 1]).

    Blank entries are skipped. Raises ValueError on anything else.
    """
    out = []
    for part in content.split(","):
        part = part.strip()
        if not part:
            continue
        out.append(int(part))
    if not out:
        logger.debug("Empty int list: %r", content)
    return out
