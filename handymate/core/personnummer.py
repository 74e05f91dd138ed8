"""
Personnummer och OCR.

Personnummer (YYMMDD-XXXX eller YYYYMMDD-XXXX) kontrolleras med
Luhn-algoritmen på de tio sista siffrorna. Samma algoritm ger
kontrollsiffran i OCR-referensen på fakturor.
"""

from __future__ import annotations

import re
from typing import Optional

_SEPARATORS = re.compile(r"[-+\s]")


def _clean(nr: str) -> str:
    return _SEPARATORS.sub("", nr or "")


def luhn_sum(digits: str) -> int:
    """
    Luhn-summa där varannan siffra, med början på den första, dubbleras.
    Används på personnummerets tio siffror (inkl. kontrollsiffra).
    """
    total = 0
    for i, ch in enumerate(digits):
        d = int(ch)
        if i % 2 == 0:
            d *= 2
            if d > 9:
                d -= 9
        total += d
    return total


def luhn_check_digit(digits: str) -> int:
    """
    Kontrollsiffra som ska läggas till sist i digits (OCR, mod 10).
    Siffran närmast kontrollsiffran dubbleras.
    """
    total = 0
    for i, ch in enumerate(reversed(digits)):
        d = int(ch)
        if i % 2 == 0:
            d *= 2
            if d > 9:
                d -= 9
        total += d
    return (10 - total % 10) % 10


def is_valid_personnummer(nr: Optional[str]) -> bool:
    if not nr:
        return False

    cleaned = _clean(nr)
    if not re.fullmatch(r"\d{10}|\d{12}", cleaned):
        return False

    digits = cleaned[2:] if len(cleaned) == 12 else cleaned
    return luhn_sum(digits) % 10 == 0


def format_personnummer(nr: Optional[str]) -> str:
    """
    Formatera till YYYYMMDD-XXXX. Tvåsiffrigt år > 30 tolkas som 1900-tal.
    Okända format returneras oförändrade.
    """
    if not nr:
        return ""
    cleaned = _clean(nr)

    if len(cleaned) == 12 and cleaned.isdigit():
        return f"{cleaned[:8]}-{cleaned[8:]}"

    if len(cleaned) == 10 and cleaned.isdigit():
        # Gissa århundrade
        century = "19" if int(cleaned[:2]) > 30 else "20"
        return f"{century}{cleaned[:6]}-{cleaned[6:]}"

    return nr


def ocr_reference(invoice_number: str) -> str:
    """
    OCR-nummer från fakturanummer: '2024-007' -> '20240073'.
    """
    digits = re.sub(r"\D", "", invoice_number or "")
    if not digits:
        return ""
    return f"{digits}{luhn_check_digit(digits)}"
