from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from handymate.core.calculator import calculate_document_totals
from handymate.core.errors import ConcurrentModification, InvalidTransition
from handymate.core.lifecycle import Actor, InvoiceAction, InvoiceStatus, QuoteStatus, plan_invoice_transition
from handymate.core.personnummer import ocr_reference
from handymate.core.reminders import build_reminder_message, plan_reminder
from handymate.server.models import Invoice, InvoiceLine, Quote
from handymate.services.business_config import BusinessConfig
from handymate.services.delivery import DeliveryChannel, Message, deliver, recipient_for
from handymate.services.documents import build_lines, new_document_fields, plan_draft_edit, snapshot
from handymate.services.persistence import find_or_create_customer, get_owned, save_changes, unit_of_work

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    invoice: Invoice
    message: Optional[str]
    # None = ingen leverans gjordes
    delivered: Optional[bool]


def next_invoice_number(session: Session, business_id: str, year: int) -> str:
    """
    Löpnummer per företag och år: 2024-001, 2024-002, ...
    """
    count = session.exec(
        select(func.count())
        .select_from(Invoice)
        .where(Invoice.business_id == business_id, Invoice.invoice_number.like(f"{year}-%"))
    ).one()
    return f"{year}-{count + 1:03d}"


def _dates(invoice_date: Optional[date], due_date: Optional[date], config: BusinessConfig, now: datetime):
    invoice_date = invoice_date or now.date()
    return invoice_date, due_date or (invoice_date + timedelta(days=config.invoice_due_days))


def create_invoice(*, session: Session, business_id: str, payload, config: BusinessConfig, now: datetime) -> Invoice:
    fields, lines = new_document_fields(payload, config)
    invoice_date, due_date = _dates(payload.invoice_date, payload.due_date, config, now)

    cust_in = payload.customer
    with unit_of_work(session):
        cust = None
        if cust_in is not None:
            cust = find_or_create_customer(
                session,
                business_id,
                name=cust_in.name,
                email=cust_in.email,
                phone_number=cust_in.phone_number,
                address_line=cust_in.address_line,
            )

        number = next_invoice_number(session, business_id, invoice_date.year)
        if not fields["title"]:
            fields["title"] = f"Faktura {number}"

        invoice = Invoice(
            business_id=business_id,
            customer_id=cust.id if cust else None,
            invoice_number=number,
            invoice_date=invoice_date,
            due_date=due_date,
            created_at=now,
            **fields,
        )
        invoice.lines = [InvoiceLine(**l) for l in lines]
        session.add(invoice)

    session.refresh(invoice)
    logger.info("faktura %s (%s) skapad för %s", invoice.id, invoice.invoice_number, business_id)
    return invoice


def create_invoice_from_quote(
    *, session: Session, business_id: str, quote_id: int, config: BusinessConfig, now: datetime
) -> Invoice:
    """
    Faktura från en accepterad offert: rader, moms, rabatt, avdragsuppgifter
    och kund kopieras. En offert kan bara faktureras en gång.
    """
    quote = get_owned(session, Quote, quote_id, business_id)
    if quote.status != QuoteStatus.ACCEPTED.value:
        raise InvalidTransition(f"bara accepterade offerter kan faktureras (status '{quote.status}')")

    existing = session.exec(select(Invoice).where(Invoice.quote_id == quote.id)).first()
    if existing is not None:
        raise InvalidTransition(f"offerten är redan fakturerad ({existing.invoice_number})")

    lines = build_lines(quote.lines)
    fields = {
        "title": quote.title,
        "description": quote.description,
        "discount_percent": quote.discount_percent,
        "vat_rate": quote.vat_rate,
        "deduction_type": quote.deduction_type,
        "deduction_persons": quote.deduction_persons,
        "personnummer": quote.personnummer,
        "property_designation": quote.property_designation,
    }
    fields.update(snapshot(calculate_document_totals(dict(fields, lines=lines), config.deduction_rules)))
    invoice_date, due_date = _dates(None, None, config, now)

    with unit_of_work(session):
        number = next_invoice_number(session, business_id, invoice_date.year)
        invoice = Invoice(
            business_id=business_id,
            customer_id=quote.customer_id,
            quote_id=quote.id,
            invoice_number=number,
            invoice_date=invoice_date,
            due_date=due_date,
            created_at=now,
            **fields,
        )
        invoice.lines = [InvoiceLine(**l) for l in lines]
        session.add(invoice)

    session.refresh(invoice)
    logger.info("faktura %s skapad från offert %s", invoice.invoice_number, quote.id)
    return invoice


def get_invoice(session: Session, business_id: str, invoice_id: int) -> Invoice:
    return get_owned(session, Invoice, invoice_id, business_id)


def list_invoices(
    session: Session,
    business_id: str,
    *,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
) -> List[Invoice]:
    stmt = select(Invoice).where(Invoice.business_id == business_id)
    if status:
        stmt = stmt.where(Invoice.status == status)
    return list(session.exec(stmt.order_by(Invoice.id.desc()).offset(skip).limit(limit)).all())


def update_invoice(
    *,
    session: Session,
    business_id: str,
    invoice_id: int,
    payload,
    config: BusinessConfig,
    now: datetime,
    expected_version: Optional[int] = None,
) -> Invoice:
    invoice = get_owned(session, Invoice, invoice_id, business_id)
    changes, new_lines, cust_in = plan_draft_edit(invoice, payload, config)
    for key in ("invoice_date", "due_date"):
        if changes.get(key, False) is None:
            changes.pop(key)

    with unit_of_work(session):
        if cust_in:
            cust = find_or_create_customer(session, business_id, **cust_in)
            changes["customer_id"] = cust.id if cust else None
        save_changes(session, invoice, changes, expected_version=expected_version)
        if new_lines is not None:
            invoice.lines = [InvoiceLine(**l) for l in new_lines]

    session.refresh(invoice)
    logger.info("faktura %s ändrad (version %s)", invoice.invoice_number, invoice.version)
    return invoice


def _transition(
    session: Session,
    invoice: Invoice,
    action: InvoiceAction,
    *,
    actor: Actor,
    now: datetime,
    config: BusinessConfig,
    expected_version: Optional[int] = None,
    **kwargs,
) -> bool:
    changes = plan_invoice_transition(
        invoice, action, actor=actor, now=now, rules=config.deduction_rules, **kwargs
    )
    if not changes:
        return False
    with unit_of_work(session):
        save_changes(session, invoice, changes, expected_version=expected_version)
    session.refresh(invoice)
    logger.info("faktura %s: %s -> %s", invoice.invoice_number, action.value, invoice.status)
    return True


def _payment_details(config: BusinessConfig) -> str:
    parts = []
    if config.bankgiro:
        parts.append(f"bankgiro {config.bankgiro}")
    if config.swish_number:
        parts.append(f"Swish {config.swish_number}")
    return " eller ".join(parts)


def send_invoice(
    *,
    session: Session,
    business_id: str,
    invoice_id: int,
    config: BusinessConfig,
    delivery: DeliveryChannel,
    now: datetime,
    expected_version: Optional[int] = None,
) -> DeliveryResult:
    invoice = get_owned(session, Invoice, invoice_id, business_id)
    changed = _transition(
        session, invoice, InvoiceAction.SEND,
        actor=Actor.BUSINESS, now=now, config=config, expected_version=expected_version,
    )
    if not changed:
        return DeliveryResult(invoice=invoice, message=None, delivered=None)

    totals = calculate_document_totals(invoice, config.deduction_rules)
    body = (
        f"Faktura {invoice.invoice_number} från {config.business_name or 'oss'}: "
        f"{int(totals.rounded()['customer_pays'])} kr, förfaller {invoice.due_date.isoformat()}. "
        f"OCR: {ocr_reference(invoice.invoice_number)}."
    )
    details = _payment_details(config)
    if details:
        body += f" Betala till {details}."
    delivered = deliver(
        delivery,
        Message(recipient=recipient_for(invoice.customer), subject=f"Faktura {invoice.invoice_number}", body=body),
    )
    return DeliveryResult(invoice=invoice, message=body, delivered=delivered)


def mark_paid(
    *,
    session: Session,
    business_id: str,
    invoice_id: int,
    config: BusinessConfig,
    now: datetime,
    paid_amount=None,
    payment_method: Optional[str] = None,
    paid_at: Optional[datetime] = None,
    expected_version: Optional[int] = None,
) -> Invoice:
    invoice = get_owned(session, Invoice, invoice_id, business_id)
    _transition(
        session, invoice, InvoiceAction.MARK_PAID,
        actor=Actor.BUSINESS, now=now, config=config, expected_version=expected_version,
        paid_amount=paid_amount, payment_method=payment_method, paid_at=paid_at,
    )
    return invoice


def cancel_invoice(
    *,
    session: Session,
    business_id: str,
    invoice_id: int,
    config: BusinessConfig,
    now: datetime,
    expected_version: Optional[int] = None,
) -> Invoice:
    invoice = get_owned(session, Invoice, invoice_id, business_id)
    _transition(
        session, invoice, InvoiceAction.CANCEL,
        actor=Actor.BUSINESS, now=now, config=config, expected_version=expected_version,
    )
    return invoice


def mark_overdue(
    *,
    session: Session,
    business_id: str,
    invoice_id: int,
    config: BusinessConfig,
    now: datetime,
    expected_version: Optional[int] = None,
) -> Invoice:
    invoice = get_owned(session, Invoice, invoice_id, business_id)
    _transition(
        session, invoice, InvoiceAction.MARK_OVERDUE,
        actor=Actor.SYSTEM, now=now, config=config, expected_version=expected_version,
    )
    return invoice


def check_overdue(*, session: Session, business_id: str, config: BusinessConfig, now: datetime) -> List[Invoice]:
    """
    Stämplar alla skickade fakturor vars förfallodag passerat som förfallna.
    Körs på begäran, det finns ingen schemaläggare.
    """
    candidates = session.exec(
        select(Invoice).where(
            Invoice.business_id == business_id,
            Invoice.status == InvoiceStatus.SENT.value,
            Invoice.due_date < now.date(),
        )
    ).all()

    stamped: List[Invoice] = []
    for invoice in candidates:
        try:
            changed = _transition(
                session, invoice, InvoiceAction.MARK_OVERDUE, actor=Actor.SYSTEM, now=now, config=config
            )
        except ConcurrentModification:
            # Ändrad under tiden (t.ex. betald) – hoppa över
            session.refresh(invoice)
            continue
        if changed:
            stamped.append(invoice)

    logger.info("check_overdue %s: %d fakturor stämplade", business_id, len(stamped))
    return stamped


def send_reminder(
    *,
    session: Session,
    business_id: str,
    invoice_id: int,
    config: BusinessConfig,
    delivery: DeliveryChannel,
    now: datetime,
    expected_version: Optional[int] = None,
) -> DeliveryResult:
    """
    Påminnelse för förfallen faktura. Räknare och tidsstämpel sätts oavsett
    leveransutfall, status rörs aldrig.
    """
    invoice = get_owned(session, Invoice, invoice_id, business_id)
    stamp = plan_reminder(invoice, now, config.reminder_cooldown)
    totals = calculate_document_totals(invoice, config.deduction_rules)

    with unit_of_work(session):
        save_changes(session, invoice, stamp.as_changes(), expected_version=expected_version)
    session.refresh(invoice)
    logger.info("faktura %s: påminnelse %d", invoice.invoice_number, invoice.reminder_count)

    message = build_reminder_message(
        template=config.reminder_template,
        invoice_number=invoice.invoice_number,
        amount=totals.customer_pays,
        due_date=invoice.due_date,
        ocr=ocr_reference(invoice.invoice_number),
        business_name=config.business_name,
        phone_number=config.phone_number,
        bankgiro=config.bankgiro,
        swish_number=config.swish_number,
        late_fee_percent=config.late_fee_percent,
        now=now,
    )
    delivered = deliver(
        delivery,
        Message(
            recipient=recipient_for(invoice.customer),
            subject=f"Påminnelse faktura {invoice.invoice_number}",
            body=message,
        ),
    )
    return DeliveryResult(invoice=invoice, message=message, delivered=delivered)
