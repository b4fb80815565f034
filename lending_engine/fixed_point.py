"""Fixed-point helpers on top of :class:`decimal.Decimal`.

Every amount, price, rate and ratio handled by the engine is a ``Decimal``
quantized to 18 fractional digits. Rounding is explicit at each call site:

* amounts credited to accounts round down,
* amounts owed to the protocol round up,
* seized collateral and health ratios round down.
"""
from __future__ import annotations

from decimal import (
    ROUND_CEILING,
    ROUND_FLOOR,
    Context,
    Decimal,
    InvalidOperation,
    localcontext,
)

DecimalLike = Decimal | float | str | int

PLACES = 18
QUANTUM = Decimal(1).scaleb(-PLACES)
ZERO = Decimal(0)
ONE = Decimal(1)
INFINITY = Decimal("Infinity")

# Wide enough for 1e30 amounts times 1e18 precision without intermediate loss.
_CONTEXT = Context(prec=80)


def to_decimal(value: DecimalLike) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a numeric amount")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal value: {value!r}") from e


def round_down(value: Decimal) -> Decimal:
    return value.quantize(QUANTUM, rounding=ROUND_FLOOR, context=_CONTEXT)


def round_up(value: Decimal) -> Decimal:
    return value.quantize(QUANTUM, rounding=ROUND_CEILING, context=_CONTEXT)


def mul(a: Decimal, b: Decimal) -> Decimal:
    """Exact product (no quantization)."""
    return _CONTEXT.multiply(a, b)


def div(a: Decimal, b: Decimal) -> Decimal:
    """Quotient at full working precision (no quantization)."""
    return _CONTEXT.divide(a, b)


def mul_down(a: Decimal, b: Decimal) -> Decimal:
    return round_down(mul(a, b))


def mul_up(a: Decimal, b: Decimal) -> Decimal:
    return round_up(mul(a, b))


def div_down(a: Decimal, b: Decimal) -> Decimal:
    return round_down(div(a, b))


def div_up(a: Decimal, b: Decimal) -> Decimal:
    return round_up(div(a, b))


def is_whole_quantum(value: Decimal) -> bool:
    """True when ``value`` carries no digits beyond the 18th decimal place."""
    return value == round_down(value)


def working_precision():
    """Context manager making ``+``/``-`` on Decimals use the engine's precision."""
    return localcontext(_CONTEXT)
