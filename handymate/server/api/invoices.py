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
from handymate.server.schemas.invoice import ExternalRefIn, InvoiceCreateIn, InvoiceUpdateIn, PaymentIn
from handymate.services import accounting, invoice_service
from handymate.services.business_config import BusinessConfig
from handymate.services.delivery import DeliveryChannel
from handymate.services.document_render import render_document
from handymate.services.views import serialize_invoice

router = APIRouter(
    prefix="/invoices",
    tags=["invoices"],
    dependencies=[Depends(verify_api_key)],
)


# ==============================
# LISTA / SKAPA
# ==============================

@router.get("", summary="Lista fakturor")
@router.get("/", include_in_schema=False)
def list_invoices(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    status: Optional[str] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    rows = invoice_service.list_invoices(session, business_id, status=status, skip=skip, limit=limit)
    return [serialize_invoice(i, now, config.deduction_rules) for i in rows]


@router.post("", summary="Skapa faktura (utkast)")
def create_invoice(
    payload: InvoiceCreateIn,
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    invoice = invoice_service.create_invoice(
        session=session, business_id=business_id, payload=payload, config=config, now=now
    )
    return serialize_invoice(invoice, now, config.deduction_rules)


@router.post("/check-overdue", summary="Stämpla förfallna fakturor")
def check_overdue(
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    stamped = invoice_service.check_overdue(session=session, business_id=business_id, config=config, now=now)
    return {
        "count": len(stamped),
        "invoices": [serialize_invoice(i, now, config.deduction_rules) for i in stamped],
    }


# ==============================
# EN FAKTURA
# ==============================

@router.get("/{invoice_id}")
def get_invoice(
    invoice_id: int,
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    invoice = invoice_service.get_invoice(session, business_id, invoice_id)
    return serialize_invoice(invoice, now, config.deduction_rules)


@router.put("/{invoice_id}", summary="Ändra utkast")
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdateIn,
    expected_version: Optional[int] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    invoice = invoice_service.update_invoice(
        session=session,
        business_id=business_id,
        invoice_id=invoice_id,
        payload=payload,
        config=config,
        now=now,
        expected_version=expected_version,
    )
    return serialize_invoice(invoice, now, config.deduction_rules)


@router.post("/{invoice_id}/send", summary="Skicka faktura")
def send_invoice(
    invoice_id: int,
    expected_version: Optional[int] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    delivery: DeliveryChannel = Depends(get_delivery),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    result = invoice_service.send_invoice(
        session=session,
        business_id=business_id,
        invoice_id=invoice_id,
        config=config,
        delivery=delivery,
        now=now,
        expected_version=expected_version,
    )
    return {
        "invoice": serialize_invoice(result.invoice, now, config.deduction_rules),
        "message": result.message,
        "delivered": result.delivered,
    }


@router.post("/{invoice_id}/pay", summary="Markera som betald")
def pay_invoice(
    invoice_id: int,
    payload: PaymentIn,
    expected_version: Optional[int] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    invoice = invoice_service.mark_paid(
        session=session,
        business_id=business_id,
        invoice_id=invoice_id,
        config=config,
        now=now,
        paid_amount=payload.paid_amount,
        payment_method=payload.payment_method,
        paid_at=payload.paid_at,
        expected_version=expected_version,
    )
    return serialize_invoice(invoice, now, config.deduction_rules)


@router.post("/{invoice_id}/cancel", summary="Makulera faktura")
def cancel_invoice(
    invoice_id: int,
    expected_version: Optional[int] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    invoice = invoice_service.cancel_invoice(
        session=session,
        business_id=business_id,
        invoice_id=invoice_id,
        config=config,
        now=now,
        expected_version=expected_version,
    )
    return serialize_invoice(invoice, now, config.deduction_rules)


@router.post("/{invoice_id}/overdue", summary="Stämpla som förfallen")
def overdue_invoice(
    invoice_id: int,
    expected_version: Optional[int] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    invoice = invoice_service.mark_overdue(
        session=session,
        business_id=business_id,
        invoice_id=invoice_id,
        config=config,
        now=now,
        expected_version=expected_version,
    )
    return serialize_invoice(invoice, now, config.deduction_rules)


@router.post("/{invoice_id}/reminder", summary="Skicka påminnelse")
def remind_invoice(
    invoice_id: int,
    expected_version: Optional[int] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    delivery: DeliveryChannel = Depends(get_delivery),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    result = invoice_service.send_reminder(
        session=session,
        business_id=business_id,
        invoice_id=invoice_id,
        config=config,
        delivery=delivery,
        now=now,
        expected_version=expected_version,
    )
    return {
        "invoice": serialize_invoice(result.invoice, now, config.deduction_rules),
        "message": result.message,
        "delivered": result.delivered,
    }


# ==============================
# BOKFÖRING
# ==============================

@router.get("/{invoice_id}/ledger-entry", summary="Bokföringsunderlag för betald faktura")
def ledger_entry(
    invoice_id: int,
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    session: Session = Depends(get_session),
):
    invoice = invoice_service.get_invoice(session, business_id, invoice_id)
    return accounting.build_ledger_entry(invoice, config.deduction_rules).as_dict()


@router.put("/{invoice_id}/external-ref", summary="Spara referens från bokföringssystemet")
def external_ref(
    invoice_id: int,
    payload: ExternalRefIn,
    expected_version: Optional[int] = Query(None),
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    now: datetime = Depends(get_now),
    session: Session = Depends(get_session),
):
    invoice = accounting.set_external_reference(
        session=session,
        business_id=business_id,
        invoice_id=invoice_id,
        external_ref=payload.external_ref,
        expected_version=expected_version,
    )
    return serialize_invoice(invoice, now, config.deduction_rules)


@router.get("/{invoice_id}/document", summary="Fakturadokument (HTML)")
def invoice_document(
    invoice_id: int,
    business_id: str = Depends(get_business_id),
    config: BusinessConfig = Depends(get_business_config),
    session: Session = Depends(get_session),
):
    invoice = invoice_service.get_invoice(session, business_id, invoice_id)
    return HTMLResponse(content=render_document(invoice, config, is_invoice=True))
