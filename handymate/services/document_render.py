from __future__ import annotations

import html
import re
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from handymate.core.calculator import DocumentTotals
from handymate.core.money import format_sek
from handymate.core.personnummer import ocr_reference
from handymate.rot_rut import deduction_label
from handymate.services.business_config import BusinessConfig
from handymate.services.views import document_totals

# handymate/templates/document.html
TEMPLATE_PATH = Path(__file__).resolve().parents[1] / "templates" / "document.html"

_STATUS_TEXT = {
    "draft": "Utkast",
    "sent": "Skickad",
    "opened": "Öppnad av kund",
    "accepted": "Accepterad",
    "declined": "Nekad",
    "expired": "Utgången",
    "paid": "Betald",
    "overdue": "Förfallen",
    "cancelled": "Makulerad",
}


def _esc(value: Any) -> str:
    return html.escape("" if value is None else str(value))


def _date_str(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return ""


def _quantity_str(value: Any) -> str:
    """1.50 -> '1,5', 10.00 -> '10'."""
    try:
        q = Decimal(str(value)).normalize()
    except ArithmeticError:
        return str(value)
    return f"{q:f}".replace(".", ",")


def build_rows_html(lines: Iterable[Any]) -> str:
    """
    HTML-rader (tbody) för dokumentets rader, belopp i hela kronor.
    """
    html_rows: List[str] = []
    for line in lines:
        html_rows.append(
            "<tr>"
            f"<td>{_esc(line.description)}</td>"
            f'<td class="num">{_quantity_str(line.quantity)}</td>'
            f"<td>{_esc(line.unit)}</td>"
            f'<td class="num">{format_sek(line.unit_price)}</td>'
            f'<td class="num">{format_sek(line.quantity * line.unit_price)}</td>'
            "</tr>"
        )
    return "\n          ".join(html_rows)


def _signature_text(doc: Any) -> str:
    signed_at = getattr(doc, "signed_at", None)
    if signed_at:
        return f"Signerad av {_esc(doc.signer_name)} {_date_str(signed_at)}"
    paid_at = getattr(doc, "paid_at", None)
    if paid_at:
        return f"Betald {_date_str(paid_at)}"
    return ""


def build_context(
    doc: Any,
    config: BusinessConfig,
    *,
    is_invoice: bool,
    totals: Optional[DocumentTotals] = None,
) -> Dict[str, str]:
    """
    Alla fält som templaten använder. Beloppen kommer från kalkylatorn
    och avrundas först här.
    """
    rules = config.deduction_rules
    totals = totals or document_totals(doc, rules)
    rounded = totals.rounded()
    customer = doc.customer

    if is_invoice:
        title = "Faktura"
        number = doc.invoice_number
        document_date = _date_str(doc.invoice_date)
        validity_label, validity_date = "Förfallodatum", _date_str(doc.due_date)
        ocr = ocr_reference(doc.invoice_number)
    else:
        title = "Offert"
        number = str(doc.id)
        document_date = _date_str(doc.sent_at or doc.created_at)
        validity_label, validity_date = "Giltig till", _date_str(doc.valid_until)
        ocr = ""

    payment_parts = []
    if config.bankgiro:
        payment_parts.append(f"Bankgiro {config.bankgiro}")
    if config.swish_number:
        payment_parts.append(f"Swish {config.swish_number}")

    if totals.deduction_type:
        label = deduction_label(totals.deduction_type, rules)
        deduction_amount_text = f"-{format_sek(totals.deduction_amount)} kr"
        deduction_note = f"{label} förutsätter att Skatteverket godkänner begäran"
    else:
        label = deduction_amount_text = deduction_note = ""

    return {
        "document_title": title,
        "document_number": _esc(number),
        "document_date": document_date,
        "status_text": _STATUS_TEXT.get(doc.status, doc.status),
        "validity_label": validity_label,
        "validity_date": validity_date,
        "ocr_number": ocr,
        "company_name": _esc(config.business_name),
        "company_org_number": _esc(config.org_number),
        "company_phone": _esc(config.phone_number),
        "customer_name": _esc(customer.name if customer else ""),
        "customer_address": _esc(customer.address_line if customer else ""),
        "description": _esc(doc.description),
        "rows_html": build_rows_html(doc.lines),
        "subtotal": format_sek(rounded["subtotal"]),
        "discount_percent": f"{totals.discount_percent.normalize():f}",
        "discount_amount": format_sek(rounded["discount_amount"]),
        "vat_percent": f"{totals.vat_rate.normalize():f}",
        "vat_amount": format_sek(rounded["vat_amount"]),
        "total": format_sek(rounded["total"]),
        "deduction_label": label,
        "deduction_amount_text": deduction_amount_text,
        "customer_pays": format_sek(rounded["customer_pays"]),
        "signature_text": _signature_text(doc),
        "payment_details": _esc(" / ".join(payment_parts)),
        "deduction_note": deduction_note,
    }


def render_document_html(context: Dict[str, Any]) -> str:
    """
    Läs HTML-templaten och ersätt alla [[nyckel]] med context-värden.
    Allt som inte finns i context ersätts med tom sträng.
    """
    html_text = TEMPLATE_PATH.read_text(encoding="utf-8")
    for key, value in context.items():
        html_text = html_text.replace(f"[[{key}]]", str(value))
    return re.sub(r"\[\[[a-zA-Z0-9_]+\]\]", "", html_text)


def render_document(doc: Any, config: BusinessConfig, *, is_invoice: bool) -> str:
    return render_document_html(build_context(doc, config, is_invoice=is_invoice))
