"""
Underlag till bokföringssystemet.

Läser en betald faktura och ger en verifikation. Den enda återskrivningen
är bokföringssystemets referens (external_ref).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlmodel import Session

from handymate.core.errors import InvalidTransition, MissingRequiredField
from handymate.core.lifecycle import InvoiceStatus
from handymate.core.personnummer import ocr_reference
from handymate.rot_rut import DeductionRules
from handymate.server.models import Invoice
from handymate.services.persistence import get_owned, save_changes, unit_of_work
from handymate.services.views import document_totals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    invoice_number: str
    ocr: str
    invoice_date: date
    due_date: date
    paid_at: Optional[datetime]
    net_amount: Decimal          # efter rabatt, exkl. moms
    vat_rate: Decimal
    vat_amount: Decimal
    total: Decimal
    deduction_type: Optional[str]
    deduction_amount: Decimal
    customer_pays: Decimal
    paid_amount: Optional[Decimal]
    payment_method: Optional[str]
    external_ref: Optional[str]

    def as_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        for key, value in out.items():
            if isinstance(value, Decimal):
                out[key] = str(value)
            elif isinstance(value, (date, datetime)):
                out[key] = value.isoformat()
        return out


def _require_paid(invoice: Invoice) -> None:
    if invoice.status != InvoiceStatus.PAID.value:
        raise InvalidTransition(f"faktura {invoice.invoice_number} är inte betald (status '{invoice.status}')")


def build_ledger_entry(invoice: Invoice, rules: Optional[DeductionRules] = None) -> LedgerEntry:
    _require_paid(invoice)
    totals = document_totals(invoice, rules)
    return LedgerEntry(
        invoice_number=invoice.invoice_number,
        ocr=ocr_reference(invoice.invoice_number),
        invoice_date=invoice.invoice_date,
        due_date=invoice.due_date,
        paid_at=invoice.paid_at,
        net_amount=totals.after_discount,
        vat_rate=totals.vat_rate,
        vat_amount=totals.vat_amount,
        total=totals.total,
        deduction_type=totals.deduction_type.value if totals.deduction_type else None,
        deduction_amount=totals.deduction_amount,
        customer_pays=totals.customer_pays,
        paid_amount=invoice.paid_amount,
        payment_method=invoice.payment_method,
        external_ref=invoice.external_ref,
    )


def set_external_reference(
    *,
    session: Session,
    business_id: str,
    invoice_id: int,
    external_ref: str,
    expected_version: Optional[int] = None,
) -> Invoice:
    invoice = get_owned(session, Invoice, invoice_id, business_id)
    _require_paid(invoice)
    ref = (external_ref or "").strip()
    if not ref:
        raise MissingRequiredField("extern referens saknas", field="external_ref")

    with unit_of_work(session):
        save_changes(session, invoice, {"external_ref": ref}, expected_version=expected_version)
    session.refresh(invoice)
    logger.info("faktura %s: extern referens %s", invoice.invoice_number, ref)
    return invoice
