from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Union

WEI_PER_DATA = 10**18

AmountLike = Union[int, str]


def parse_wei(value: object) -> int:
    """Parse an indexer/ledger amount (decimal string or int) into wei."""
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    if isinstance(value, int):
        return value
    if value is None:
        return 0
    text = str(value).strip()
    if not text:
        return 0
    try:
        return int(text, 10)
    except ValueError as exc:
        raise ValueError(f"Not an integer amount: {value!r}") from exc


def data_to_wei(amount: Union[int, str, Decimal]) -> int:
    if isinstance(amount, int):
        return amount * WEI_PER_DATA
    try:
        dec = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Not a DATA amount: {amount!r}") from exc
    return int(dec * WEI_PER_DATA)


def wei_to_data(wei: AmountLike, with_decimals: bool = False) -> str:
    value = parse_wei(wei)
    sign = "-" if value < 0 else ""
    whole, remainder = divmod(abs(value), WEI_PER_DATA)
    if not with_decimals:
        return f"{sign}{whole}"
    cents = remainder * 100 // WEI_PER_DATA
    return f"{sign}{whole}.{cents:02d}"


def format_data(wei: AmountLike, with_decimals: bool = False) -> str:
    """Thousands-separated DATA amount, e.g. ``1,234`` or ``1,234.50``."""
    text = wei_to_data(wei, with_decimals=with_decimals)
    sign = ""
    if text.startswith("-"):
        sign, text = "-", text[1:]
    whole, _, decimals = text.partition(".")
    grouped = f"{int(whole):,}"
    return f"{sign}{grouped}.{decimals}" if decimals else f"{sign}{grouped}"


__all__ = ["WEI_PER_DATA", "data_to_wei", "format_data", "parse_wei", "wei_to_data"]
