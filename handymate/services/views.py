"""
Serialisering av offerter och fakturor till API-svar.

Summorna räknas alltid fram på nytt från raderna. Exakta belopp skickas
som strängar (Decimal), presentationsvärden i hela kronor som heltal.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from handymate.core.calculator import DocumentTotals, calculate_document_totals, check_stored_total
from handymate.core.personnummer import format_personnummer, ocr_reference
from handymate.core.reminders import days_overdue, is_overdue
from handymate.rot_rut import DeductionRules, deduction_label
from handymate.services.business_config import BusinessConfig


def _iso(value: Any) -> Optional[str]:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _dec(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def serialize_totals(totals: DocumentTotals, rules: Optional[DeductionRules] = None) -> Dict[str, Any]:
    exact = {
        k: (str(v) if isinstance(v, Decimal) else v)
        for k, v in totals.as_dict().items()
    }
    exact["rounded"] = {k: int(v) for k, v in totals.rounded().items()}
    exact["deduction_label"] = (
        deduction_label(totals.deduction_type, rules) if totals.deduction_type else None
    )
    return exact


def document_totals(doc: Any, rules: Optional[DeductionRules] = None) -> DocumentTotals:
    """
    Summor för ett lagrat dokument. Lagrade radtotaler kontrolleras först.
    """
    for line in doc.lines:
        check_stored_total(line)
    return calculate_document_totals(doc, rules)


def serialize_lines(doc: Any) -> list:
    return [
        {
            "id": l.id,
            "position": l.position,
            "kind": l.kind,
            "description": l.description,
            "quantity": _dec(l.quantity),
            "unit": l.unit,
            "unit_price": _dec(l.unit_price),
            "total": _dec(l.total),
        }
        for l in doc.lines
    ]


def serialize_customer(customer: Any) -> Optional[Dict[str, Any]]:
    if customer is None:
        return None
    return {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "phone_number": customer.phone_number,
        "address_line": customer.address_line,
    }


def _common(doc: Any, rules: Optional[DeductionRules]) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "business_id": doc.business_id,
        "status": doc.status,
        "version": doc.version,
        "title": doc.title,
        "description": doc.description,
        "customer": serialize_customer(doc.customer),
        "discount_percent": _dec(doc.discount_percent),
        "vat_rate": _dec(doc.vat_rate),
        "deduction_type": doc.deduction_type,
        "deduction_persons": doc.deduction_persons,
        "personnummer": format_personnummer(doc.personnummer) or None,
        "property_designation": doc.property_designation,
        "created_at": _iso(doc.created_at),
        "sent_at": _iso(doc.sent_at),
        "lines": serialize_lines(doc),
        "totals": serialize_totals(document_totals(doc, rules), rules),
    }


def serialize_quote(quote: Any, rules: Optional[DeductionRules] = None) -> Dict[str, Any]:
    out = _common(quote, rules)
    out.update(
        {
            "valid_until": _iso(quote.valid_until),
            "opened_at": _iso(quote.opened_at),
            "accepted_at": _iso(quote.accepted_at),
            "declined_at": _iso(quote.declined_at),
            "decline_reason": quote.decline_reason,
            "signed_at": _iso(quote.signed_at),
            "signer_name": quote.signer_name,
            "signature_ref": quote.signature_ref,
        }
    )
    return out


def serialize_invoice(invoice: Any, now: datetime, rules: Optional[DeductionRules] = None) -> Dict[str, Any]:
    overdue = is_overdue(invoice.status, invoice.due_date, now)
    out = _common(invoice, rules)
    out.update(
        {
            "invoice_number": invoice.invoice_number,
            "ocr": ocr_reference(invoice.invoice_number),
            "quote_id": invoice.quote_id,
            "invoice_date": _iso(invoice.invoice_date),
            "due_date": _iso(invoice.due_date),
            "paid_at": _iso(invoice.paid_at),
            "paid_amount": _dec(invoice.paid_amount),
            "payment_method": invoice.payment_method,
            "cancelled_at": _iso(invoice.cancelled_at),
            "reminder_sent_at": _iso(invoice.reminder_sent_at),
            "reminder_count": invoice.reminder_count,
            "external_ref": invoice.external_ref,
            # härlett, oberoende av lagrad status
            "is_overdue": overdue,
            "days_overdue": days_overdue(invoice.due_date, now) if overdue else 0,
        }
    )
    return out


def business_contact(config: BusinessConfig) -> Dict[str, Any]:
    return {
        "business_name": config.business_name,
        "phone_number": config.phone_number,
        "org_number": config.org_number,
        "bankgiro": config.bankgiro,
        "swish_number": config.swish_number,
    }
