from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlmodel import Session, select

from handymate.core.calculator import DocumentTotals, calculate_totals
from handymate.core.lifecycle import Actor, QuoteAction, plan_quote_transition
from handymate.server.models import Quote, QuoteLine, SigningToken
from handymate.services.business_config import BusinessConfig
from handymate.services.delivery import DeliveryChannel, Message, deliver, recipient_for
from handymate.services.documents import new_document_fields, plan_draft_edit
from handymate.services.persistence import (
    find_or_create_customer,
    get_owned,
    save_changes,
    unit_of_work,
)
from handymate.services.signing import active_token, create_token, expire_if_due, sign_url

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    quote: Quote
    token: Optional[SigningToken]
    sign_url: Optional[str]
    # None = ingen leverans gjordes (redan skickad)
    delivered: Optional[bool]


def calculate_quote(payload, config: BusinessConfig) -> DocumentTotals:
    """
    Prissätter en payload utan att spara något.
    """
    return calculate_totals(
        payload.lines,
        discount_percent=payload.discount_percent,
        vat_rate=payload.vat_rate if payload.vat_rate is not None else config.vat_rate,
        deduction_type=payload.deduction_type,
        rules=config.deduction_rules,
        deduction_persons=payload.deduction_persons,
    )


def create_quote(*, session: Session, business_id: str, payload, config: BusinessConfig, now: datetime) -> Quote:
    """
    Skapar och sparar en offert (utkast) plus rader.
    Raderna valideras och summorna räknas fram innan något skrivs.
    """
    fields, lines = new_document_fields(payload, config)

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

        if not fields["title"]:
            fields["title"] = f"Offert för {cust.name}" if cust else "Offert"

        quote = Quote(
            business_id=business_id,
            customer_id=cust.id if cust else None,
            valid_until=payload.valid_until or (now.date() + timedelta(days=config.quote_valid_days)),
            created_at=now,
            **fields,
        )
        quote.lines = [QuoteLine(**l) for l in lines]
        session.add(quote)

    session.refresh(quote)
    logger.info("offert %s skapad för %s", quote.id, business_id)
    return quote


def get_quote(session: Session, business_id: str, quote_id: int, *, now: datetime) -> Quote:
    quote = get_owned(session, Quote, quote_id, business_id)
    expire_if_due(session, quote, now)
    return quote


def list_quotes(
    session: Session,
    business_id: str,
    *,
    now: datetime,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
) -> List[Quote]:
    stmt = select(Quote).where(Quote.business_id == business_id)
    if status:
        stmt = stmt.where(Quote.status == status)
    rows = list(session.exec(stmt.order_by(Quote.id.desc()).offset(skip).limit(limit)).all())
    for q in rows:
        expire_if_due(session, q, now)
    return rows


def update_quote(
    *,
    session: Session,
    business_id: str,
    quote_id: int,
    payload,
    config: BusinessConfig,
    now: datetime,
    expected_version: Optional[int] = None,
) -> Quote:
    quote = get_owned(session, Quote, quote_id, business_id)
    changes, new_lines, cust_in = plan_draft_edit(quote, payload, config)

    with unit_of_work(session):
        if cust_in:
            cust = find_or_create_customer(session, business_id, **cust_in)
            changes["customer_id"] = cust.id if cust else None
        save_changes(session, quote, changes, expected_version=expected_version)
        if new_lines is not None:
            quote.lines = [QuoteLine(**l) for l in new_lines]

    session.refresh(quote)
    logger.info("offert %s ändrad (version %s)", quote.id, quote.version)
    return quote


def send_quote(
    *,
    session: Session,
    business_id: str,
    quote_id: int,
    config: BusinessConfig,
    delivery: DeliveryChannel,
    now: datetime,
    public_app_url: str,
    expected_version: Optional[int] = None,
) -> SendResult:
    """
    Draft → Sent. Signeringsnyckeln skapas i samma transaktion som
    statusändringen. Leveransen görs efteråt; sent_at står kvar även om
    den misslyckas. Att skicka en redan skickad offert är en no-op.
    """
    quote = get_owned(session, Quote, quote_id, business_id)
    changes = plan_quote_transition(
        quote, QuoteAction.SEND, actor=Actor.BUSINESS, now=now, rules=config.deduction_rules
    )

    if not changes:
        # redan skickad, samma aktiva nyckel och ingen ny leverans
        tok = active_token(session, quote.id, now)
        return SendResult(
            quote=quote,
            token=tok,
            sign_url=sign_url(tok.token, public_app_url) if tok else None,
            delivered=None,
        )

    with unit_of_work(session):
        save_changes(session, quote, changes, expected_version=expected_version)
        tok = create_token(session, quote.id, now=now, ttl=config.signing_token_ttl)
        token_value = tok.token

    session.refresh(quote)
    session.refresh(tok)
    logger.info("offert %s: draft -> sent", quote.id)

    url = sign_url(token_value, public_app_url)
    message = Message(
        recipient=recipient_for(quote.customer),
        subject=f"Offert från {config.business_name or 'oss'}: {quote.title}",
        body=(
            f"Hej! Här är din offert från {config.business_name or 'oss'}. "
            f"Granska och signera här: {url}"
        ),
        link=url,
    )
    delivered = deliver(delivery, message)
    return SendResult(quote=quote, token=tok, sign_url=url, delivered=delivered)
