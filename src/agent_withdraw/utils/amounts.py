"""Conversions between human decimal amounts and integer smallest units."""

from decimal import Decimal, localcontext

# Enough digits for any uint256 value
_PRECISION = 80


def to_raw_amount(amount: Decimal, decimals: int) -> int:
    """Convert a human amount to smallest units (wei-style).

    Raises:
        ValueError: If the amount has more fractional digits than decimals
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = Decimal(amount).scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
        return int(scaled)


def to_human_amount(raw: int, decimals: int) -> Decimal:
    """Convert smallest units to a human amount."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(raw).scaleb(-decimals)


def format_amount(value: Decimal) -> str:
    """Format a decimal without exponent or trailing zeros."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        normalized = value.normalize()
    return f"{normalized:f}"
