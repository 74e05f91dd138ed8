"""
Pris- och avdragskalkylator.

Rena funktioner: tar rader + konfiguration och räknar fram delsumma, rabatt,
moms, ROT/RUT-avdrag och vad kunden betalar. Ingen I/O, inget tillstånd.

Raderna får vara dicts, dataclasses eller modeller – vi läser bara
kind, quantity och unit_price (samt total om den finns lagrad).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from handymate.core.errors import DataIntegrityError, InvalidConfiguration, InvalidLineItem
from handymate.core.money import HUNDRED, ZERO, round_kronor, to_decimal
from handymate.rot_rut import DeductionRules, DeductionType, calculate_deduction, parse_deduction_type


class LineKind(str, Enum):
    LABOR = "labor"
    MATERIAL = "material"
    SERVICE = "service"


@dataclass(frozen=True)
class PricedLine:
    kind: LineKind
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    labor_total: Decimal
    material_total: Decimal
    service_total: Decimal
    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    after_discount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total: Decimal
    deduction_type: Optional[DeductionType]
    deduction_eligible: Decimal
    deduction_percent: Decimal
    deduction_amount: Decimal
    deduction_limited_by_max: bool
    customer_pays: Decimal

    def as_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["deduction_type"] = self.deduction_type.value if self.deduction_type else None
        return out

    def rounded(self) -> Dict[str, Decimal]:
        """
        Presentationsvärden i hela kronor. Procentsatser lämnas orörda.
        """
        return {
            "labor_total": round_kronor(self.labor_total),
            "material_total": round_kronor(self.material_total),
            "service_total": round_kronor(self.service_total),
            "subtotal": round_kronor(self.subtotal),
            "discount_amount": round_kronor(self.discount_amount),
            "after_discount": round_kronor(self.after_discount),
            "vat_amount": round_kronor(self.vat_amount),
            "total": round_kronor(self.total),
            "deduction_eligible": round_kronor(self.deduction_eligible),
            "deduction_amount": round_kronor(self.deduction_amount),
            "customer_pays": round_kronor(self.customer_pays),
        }


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def _parse_kind(value: Any) -> LineKind:
    if isinstance(value, LineKind):
        return value
    try:
        return LineKind(str(value).strip().lower())
    except ValueError as e:
        raise InvalidLineItem(f"okänd radtyp: {value!r}", field="kind") from e


def _non_negative(value: Any, field: str) -> Decimal:
    try:
        number = to_decimal(value)
    except ValueError as e:
        raise InvalidLineItem(f"{field} måste vara ett tal, fick {value!r}", field=field) from e
    if number < ZERO:
        raise InvalidLineItem(f"{field} får inte vara negativt ({number})", field=field)
    return number


def price_line(item: Any) -> PricedLine:
    """
    Validerar en rad och räknar fram radens total = quantity * unit_price.
    """
    kind = _parse_kind(_field(item, "kind"))
    quantity = _non_negative(_field(item, "quantity"), "quantity")
    unit_price = _non_negative(_field(item, "unit_price"), "unit_price")
    return PricedLine(kind=kind, quantity=quantity, unit_price=unit_price, total=quantity * unit_price)


def check_stored_total(item: Any) -> None:
    """
    En lagrad radtotal måste alltid vara lika med quantity * unit_price.
    Avvikelse betyder att datat har ändrats vid sidan av motorn.
    """
    stored = _field(item, "total")
    if stored is None:
        return
    expected = price_line(item).total
    if to_decimal(stored) != expected:
        raise DataIntegrityError(
            f"radtotal {stored} stämmer inte med {_field(item, 'quantity')} x {_field(item, 'unit_price')}",
            field="total",
        )


def _percent(value: Any, field: str, *, upper: Optional[Decimal] = None) -> Decimal:
    try:
        number = to_decimal(value)
    except ValueError as e:
        raise InvalidConfiguration(f"{field} måste vara ett tal, fick {value!r}", field=field) from e
    if number < ZERO or (upper is not None and number > upper):
        raise InvalidConfiguration(f"{field} utanför tillåtet intervall: {number}", field=field)
    return number


def calculate_totals(
    items: Iterable[Any],
    *,
    discount_percent: Any = 0,
    vat_rate: Any = 25,
    deduction_type: Any = None,
    rules: Optional[DeductionRules] = None,
    deduction_persons: int = 1,
) -> DocumentTotals:
    """
    Räknar fram alla belopp för en offert/faktura.

      subtotal      = arbete + material + tjänster
      discount      = subtotal * rabatt / 100
      vat           = (subtotal - discount) * moms / 100
      total         = subtotal - discount + vat
      deduction     = ROT/RUT på arbetskostnaden (se rot_rut.py)
      customer_pays = total - deduction

    Samma indata ger alltid exakt samma Decimal-värden.
    """
    discount = _percent(discount_percent, "discount_percent", upper=HUNDRED)
    vat = _percent(vat_rate, "vat_rate")
    dtype = parse_deduction_type(deduction_type)
    rules = rules or DeductionRules()

    lines: List[PricedLine] = [price_line(item) for item in items]

    labor_total = sum((l.total for l in lines if l.kind is LineKind.LABOR), ZERO)
    material_total = sum((l.total for l in lines if l.kind is LineKind.MATERIAL), ZERO)
    service_total = sum((l.total for l in lines if l.kind is LineKind.SERVICE), ZERO)

    subtotal = labor_total + material_total + service_total
    discount_amount = subtotal * discount / HUNDRED
    after_discount = subtotal - discount_amount
    vat_amount = after_discount * vat / HUNDRED
    total = after_discount + vat_amount

    deduction = calculate_deduction(labor_total, dtype, rules, persons=deduction_persons)

    return DocumentTotals(
        labor_total=labor_total,
        material_total=material_total,
        service_total=service_total,
        subtotal=subtotal,
        discount_percent=discount,
        discount_amount=discount_amount,
        after_discount=after_discount,
        vat_rate=vat,
        vat_amount=vat_amount,
        total=total,
        deduction_type=dtype,
        deduction_eligible=deduction.eligible,
        deduction_percent=deduction.percent,
        deduction_amount=deduction.amount,
        deduction_limited_by_max=deduction.limited_by_max,
        customer_pays=total - deduction.amount,
    )


def calculate_document_totals(doc: Any, rules: Optional[DeductionRules] = None) -> DocumentTotals:
    """
    Bekvämlighetsfunktion: räkna summor direkt från en offert/faktura.
    """
    return calculate_totals(
        list(_field(doc, "lines") or []),
        discount_percent=_field(doc, "discount_percent", 0) or 0,
        vat_rate=_field(doc, "vat_rate", 25),
        deduction_type=_field(doc, "deduction_type"),
        rules=rules,
        deduction_persons=_field(doc, "deduction_persons", 1) or 1,
    )
