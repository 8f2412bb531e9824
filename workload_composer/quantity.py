"""Kubernetes resource quantity parsing.

Quantities look like ``500m``, ``1Gi``, ``2``, ``1.5``, ``1e3``. Only the
syntax matters to composition: a resources block must parse before it is
accepted, but values are carried through as the strings the author wrote.
"""

from __future__ import annotations

import re
from decimal import Decimal
from decimal import InvalidOperation

_QUANTITY_RE = re.compile(
    r"^(?P<number>[+-]?(?:\d+(?:\.\d*)?|\.\d+))"
    r"(?P<suffix>Ki|Mi|Gi|Ti|Pi|Ei|[numkMGTPE]|[eE][+-]?\d+)?$"
)

BINARY_SUFFIXES = {
    "Ki": 2**10,
    "Mi": 2**20,
    "Gi": 2**30,
    "Ti": 2**40,
    "Pi": 2**50,
    "Ei": 2**60,
}

DECIMAL_SUFFIXES = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}


def parse_quantity(quantity: str | int | float) -> Decimal:
    """Parse a quantity into its value in base units.

    Args:
        quantity: Quantity string, or a bare number as YAML may produce.

    Returns:
        Decimal value (``"500m"`` -> ``Decimal("0.5")``).

    Raises:
        ValueError: If quantity is not a valid Kubernetes quantity.
    """
    if isinstance(quantity, bool):
        raise ValueError(f"Invalid quantity {quantity!r}: expected string or number")
    text = str(quantity).strip()
    match = _QUANTITY_RE.match(text)
    if not match:
        raise ValueError(f"Invalid quantity {quantity!r}")

    try:
        number = Decimal(match.group("number"))
    except InvalidOperation as e:
        raise ValueError(f"Invalid quantity {quantity!r}") from e

    suffix = match.group("suffix") or ""
    if not suffix:
        return number
    if suffix in BINARY_SUFFIXES:
        return number * BINARY_SUFFIXES[suffix]
    if suffix in DECIMAL_SUFFIXES:
        return number * DECIMAL_SUFFIXES[suffix]
    return number.scaleb(int(suffix[1:]))
