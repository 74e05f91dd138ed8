from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from sqlmodel import Session

from handymate.server.api.deps import (
    get_business_config,
    get_business_id,
    get_delivery,
    get_now,
    verify_api_key,
)
from handymate.server.db.session import get_session
from handymate.server.schemas.common import PricingIn
from handymate.server.schemas.quote import QuoteCreateIn, QuoteUpdateIn
from handymate.server.settings.config import settings
from handymate.services import invoice_service, quote_service
from handymate.services.business_config import BusinessConfig
from handymate.services.delivery import DeliveryChannel
from handymate.services.document_render import render_document
from handymate.services.signing import issue_token, sign_url
from handymate.services.views import serialize_invoice, serialize_quote, serialize_totals

router = APIRouter(
    prefix="/quotes",
    tags=["quotes"],
    dependencies=[Depends(verify_api_key)],
)


# ==============================
# BERÄKNA
# ==============================

@router.post("/calculate", summary="Beräkna summor utan att spara")
def calculate_quote(payload: PricingIn, config: BusinessConfig = Depends(get_business_config)):
    totals = quote_service.calculate_quote(payload, config)
    return serialize_totals(totals, config.deduction_rules)


# ==============================
# LISTA / SKAPA
# ==============================

@router.get("", summary="Lista offerter")
@router.get("/", include_in_schema=False)
def list_quotes(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    status: Optional[str] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    rows = quote_service.list_quotes(session, business_id, now=now, status=status, skip=skip, limit=limit)
    return [serialize_quote(q, config.deduction_rules) for q in rows]


@router.post("", summary="Spara offert (utkast)")
def create_quote(
    payload: QuoteCreateIn,
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    quote = quote_service.create_quote(
        session=session, business_id=business_id, payload=payload, config=config, now=now
    )
    return serialize_quote(quote, config.deduction_rules)


# ==============================
# EN OFFERT
# ==============================

@router.get("/{quote_id}")
def get_quote(
    quote_id: int,
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    quote = quote_service.get_quote(session, business_id, quote_id, now=now)
    return serialize_quote(quote, config.deduction_rules)


@router.put("/{quote_id}", summary="Ändra utkast")
def update_quote(
    quote_id: int,
    payload: QuoteUpdateIn,
    expected_version: Optional[int] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    quote = quote_service.update_quote(
        session=session,
        business_id=business_id,
        quote_id=quote_id,
        payload=payload,
        config=config,
        now=now,
        expected_version=expected_version,
    )
    return serialize_quote(quote, config.deduction_rules)


@router.post("/{quote_id}/send", summary="Skicka offert till kund")
def send_quote(
    quote_id: int,
    expected_version: Optional[int] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    delivery: DeliveryChannel = Depends(get_delivery),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    result = quote_service.send_quote(
        session=session,
        business_id=business_id,
        quote_id=quote_id,
        config=config,
        delivery=delivery,
        now=now,
        public_app_url=settings.public_app_url,
        expected_version=expected_version,
    )
    return {
        "quote": serialize_quote(result.quote, config.deduction_rules),
        "token": result.token.token if result.token else None,
        "sign_url": result.sign_url,
        "delivered": result.delivered,
    }


@router.post("/{quote_id}/sign-link", summary="Hämta eller rotera signeringslänk")
def quote_sign_link(
    quote_id: int,
    rotate: bool = Query(False),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    quote = quote_service.get_quote(session, business_id, quote_id, now=now)
    tok = issue_token(session, quote, config, now=now, rotate=rotate)
    return {
        "quote_id": quote.id,
        "token": tok.token,
        "sign_url": sign_url(tok.token, settings.public_app_url),
        "expires_at": tok.expires_at.isoformat(),
    }


@router.post("/{quote_id}/invoice", summary="Skapa faktura från accepterad offert")
def invoice_from_quote(
    quote_id: int,
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    invoice = invoice_service.create_invoice_from_quote(
        session=session, business_id=business_id, quote_id=quote_id, config=config, now=now
    )
    return serialize_invoice(invoice, now, config.deduction_rules)


@router.get("/{quote_id}/document", summary="Offertdokument (HTML)")
def quote_document(
    quote_id: int,
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    quote = quote_service.get_quote(session, business_id, quote_id, now=now)
    return HTMLResponse(content=render_document(quote, config, is_invoice=False))
