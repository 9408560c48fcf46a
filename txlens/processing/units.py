"""Quantity parsing and unit formatting for EVM values."""

from decimal import Decimal
from typing import Any

WEI_PER_GWEI = 10**9
WEI_PER_ETH = 10**18


def to_int(value: Any, default: int = 0) -> int:
    """Parse a JSON-RPC quantity.

    Accepts ints, ``0x``-prefixed hex strings and decimal strings.
    Empty values (``None``, ``""``, ``"0x"``) map to ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text in ("", "0x", "0X"):
        return default
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def to_optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return to_int(value)


def format_units(amount: int, decimals: int) -> str:
    """Render a base-unit integer as a decimal string without float loss."""
    if decimals <= 0:
        return str(amount)
    negative = amount < 0
    whole, fraction = divmod(abs(amount), 10**decimals)
    fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
    text = f"{whole}.{fraction_text}" if fraction_text else str(whole)
    return f"-{text}" if negative else text


def wei_to_gwei(wei: int) -> float:
    return float(Decimal(wei) / Decimal(WEI_PER_GWEI))


def wei_to_eth(wei: int) -> str:
    return format_units(wei, 18)
