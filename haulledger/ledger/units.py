"""Conversion between display amounts and ledger base units.

The ledger stores every amount as an integer scaled by 10^18. User input is a
plain decimal string such as ``"10"`` or ``"0.25"``.
"""

from __future__ import annotations

import re
from decimal import Decimal, localcontext

from .errors import InvalidAmount

DECIMALS = 18
BASE_UNIT = 10 ** DECIMALS

_AMOUNT_RE = re.compile(r"^(\d+(\.\d*)?|\.\d+)$")


def to_base_units(amount: str) -> int:
    """Parse a non-negative decimal string into base units.

    Integer arithmetic only, so large amounts keep full precision.

    Raises:
        InvalidAmount: empty, negative, exponent notation, or more than
            18 fractional digits.
    """
    text = (amount or "").strip()
    if not text:
        raise InvalidAmount("Amount is required")
    if not _AMOUNT_RE.match(text):
        raise InvalidAmount(f"Invalid amount: {amount!r}")

    whole, _, frac = text.partition(".")
    if len(frac) > DECIMALS:
        raise InvalidAmount(f"Too many decimal places (max {DECIMALS}): {amount!r}")

    return int(whole or "0") * BASE_UNIT + int(frac.ljust(DECIMALS, "0"))


def from_base_units(value: int) -> Decimal:
    """Scale a base-unit integer down by 10^18 for display."""
    value = int(value)
    with localcontext() as ctx:
        ctx.prec = max(28, len(str(abs(value))) + DECIMALS)
        return Decimal(value) / BASE_UNIT


def format_amount(value: int) -> str:
    """Human-readable amount without trailing zeros (``"12.5"``)."""
    text = format(from_base_units(value), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


__all__ = ["BASE_UNIT", "DECIMALS", "format_amount", "from_base_units", "to_base_units"]
