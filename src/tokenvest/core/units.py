"""
Token unit helpers.

These helpers standardize 18-decimal token amounts and provide base-unit
conversions without relying on floats.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any

from tokenvest.core.constants import BP_CONVERTER, TOKEN_DECIMALS, WEI_PER_TOKEN

_QUANTIZER = Decimal(f"1e-{TOKEN_DECIMALS}")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        return Decimal(str(value))
    raise ValueError("Amount must be int, float, str, or Decimal")


def quantize_tokens(value: Any) -> Decimal:
    """Convert to a Decimal token amount with 18-decimal precision."""
    try:
        dec = _to_decimal(value)
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Invalid amount value: {value}") from exc

    if dec.is_nan():
        raise ValueError("Amount cannot be NaN")
    if dec.is_infinite():
        raise ValueError("Amount cannot be infinite")

    return dec.quantize(_QUANTIZER, rounding=ROUND_DOWN)


def to_base_units(value: Any) -> int:
    """Convert a whole-token amount to integer base units."""
    dec = quantize_tokens(value)
    if dec < 0:
        raise ValueError("Amount cannot be negative")
    return int((dec * Decimal(WEI_PER_TOKEN)).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(value: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Convert integer base units to a Decimal token amount."""
    if not isinstance(value, int):
        raise ValueError("Base units must be an int")
    if decimals < 0:
        raise ValueError("Decimals cannot be negative")
    return (Decimal(value) / (Decimal(10) ** decimals)).quantize(
        Decimal(1).scaleb(-decimals), rounding=ROUND_DOWN
    )


def format_tokens(value: int, decimals: int = TOKEN_DECIMALS) -> str:
    """Format base units as a fixed-precision token string."""
    return f"{from_base_units(value, decimals):f}"


def apply_bp(amount: int, basis_points: int) -> int:
    """Return ``amount * basis_points / 10_000`` rounded down, in integers."""
    if basis_points < 0:
        raise ValueError("Basis points cannot be negative")
    return amount * basis_points // BP_CONVERTER
