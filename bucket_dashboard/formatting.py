"""Formatting utilities for currency and percentage display."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Union

Number = Union[Decimal, float, int]


def format_currency(amount: Optional[Number], include_sign: bool = True) -> str:
    """Format a currency amount with thousands separators.

    Example:
        >>> format_currency(1234.5)
        '$1,234.50'
        >>> format_currency(Decimal("1234.5"), include_sign=False)
        '1,234.50'
    """
    formatted = f"{float(amount or 0):,.2f}"
    return f"${formatted}" if include_sign else formatted


def escape_dollar_for_markdown(amount: Optional[Number]) -> str:
    """Currency string safe for ``st.markdown`` (a bare ``$`` starts LaTeX)."""
    return format_currency(amount).replace("$", "\\$")


def format_percentage(value: Optional[Number]) -> str:
    if value is None:
        return "-"
    return f"{float(value):g}%"
