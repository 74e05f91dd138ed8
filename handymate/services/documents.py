"""
Gemensamt för offerter och fakturor: rader, summor och utkastredigering.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from handymate.core.calculator import DocumentTotals, calculate_document_totals, price_line
from handymate.core.errors import InvalidTransition
from handymate.rot_rut import parse_deduction_type
from handymate.services.business_config import BusinessConfig

# Fält som inte kan nollställas med null i en ändring
_NON_NULLABLE = frozenset({"discount_percent", "vat_rate", "deduction_persons", "title"})


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def _normalize_deduction(value: Any) -> Optional[str]:
    dtype = parse_deduction_type(value)
    return dtype.value if dtype else None


def _clean(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


def build_lines(items: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Validerar raderna och ger kolumnvärden för QuoteLine/InvoiceLine.
    total räknas alltid fram här, aldrig från indata.
    """
    out: List[Dict[str, Any]] = []
    for position, item in enumerate(items):
        priced = price_line(item)
        out.append(
            {
                "kind": priced.kind.value,
                "description": _field(item, "description") or "",
                "quantity": priced.quantity,
                "unit": _field(item, "unit") or "st",
                "unit_price": priced.unit_price,
                "total": priced.total,
                "position": position,
            }
        )
    return out


def snapshot(totals: DocumentTotals) -> Dict[str, Any]:
    return {
        "subtotal": totals.subtotal,
        "vat_amount": totals.vat_amount,
        "total": totals.total,
        "deduction_amount": totals.deduction_amount,
        "customer_pays": totals.customer_pays,
    }


def new_document_fields(payload: Any, config: BusinessConfig) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Fält och rader för ett nytt dokument. Kastar CalculationError innan
    något skrivits om raderna eller konfigurationen är ogiltig.
    """
    fields: Dict[str, Any] = {
        "title": payload.title or "",
        "description": payload.description,
        "discount_percent": payload.discount_percent,
        "vat_rate": payload.vat_rate if payload.vat_rate is not None else config.vat_rate,
        "deduction_type": _normalize_deduction(payload.deduction_type),
        "deduction_persons": payload.deduction_persons,
        "personnummer": _clean(payload.personnummer),
        "property_designation": _clean(payload.property_designation),
    }
    lines = build_lines(payload.lines)
    totals = calculate_document_totals(dict(fields, lines=lines), config.deduction_rules)
    fields.update(snapshot(totals))
    return fields, lines


def plan_draft_edit(
    doc: Any, payload: Any, config: BusinessConfig
) -> Tuple[Dict[str, Any], Optional[List[Dict[str, Any]]], Optional[Dict[str, Any]]]:
    """
    Ändring av ett utkast: (fältändringar, nya rader eller None, kunduppgifter eller None).
    Bara utkast får ändras.
    """
    if doc.status != "draft":
        raise InvalidTransition(f"bara utkast kan ändras (status '{doc.status}')")

    data = payload.model_dump(exclude_unset=True)
    lines_in = data.pop("lines", None)
    customer_in = data.pop("customer", None)

    changes: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None and key in _NON_NULLABLE:
            continue
        if key == "deduction_type":
            value = _normalize_deduction(value)
        elif key in ("personnummer", "property_designation"):
            value = _clean(value)
        changes[key] = value

    new_lines = build_lines(lines_in) if lines_in is not None else None

    preview = {
        "lines": new_lines if new_lines is not None else list(doc.lines),
        "discount_percent": changes.get("discount_percent", doc.discount_percent),
        "vat_rate": changes.get("vat_rate", doc.vat_rate),
        "deduction_type": changes.get("deduction_type", doc.deduction_type),
        "deduction_persons": changes.get("deduction_persons", doc.deduction_persons),
    }
    changes.update(snapshot(calculate_document_totals(preview, config.deduction_rules)))
    return changes, new_lines, customer_in
