"""
Penninghantering.

All beloppsaritmetik görs med Decimal. Avrundning till hela kronor sker
först vid presentation (round_kronor / format_sek), aldrig mitt i en beräkning.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
HUNDRED = Decimal("100")
KRONA = Decimal("1")


def to_decimal(value: Any) -> Decimal:
    """
    Gör om value till Decimal.

    float går via str() så att 0.1 blir Decimal("0.1") och inte
    den binära approximationen. bool räknas inte som tal.
    Kastar ValueError om värdet inte går att tolka.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"inte ett belopp: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip().replace(" ", "").replace(",", "."))
        except InvalidOperation as e:
            raise ValueError(f"inte ett belopp: {value!r}") from e
    else:
        raise ValueError(f"inte ett belopp: {value!r}")

    if not result.is_finite():
        raise ValueError(f"inte ett ändligt belopp: {value!r}")
    return result


def round_kronor(value: Decimal) -> Decimal:
    """7874.5 -> 7875 (hela kronor, avrundning uppåt vid exakt halva)."""
    return value.quantize(KRONA, rounding=ROUND_HALF_UP)


def format_sek(value: Any) -> str:
    """
    Formatera belopp som svensk valuta i hela kronor: 7875 -> '7 875'.
    None ger tom sträng.
    """
    if value is None:
        return ""
    try:
        amount = round_kronor(to_decimal(value))
    except ValueError:
        return str(value)

    # 7,875 -> 7 875
    return f"{amount:,.0f}".replace(",", " ")
