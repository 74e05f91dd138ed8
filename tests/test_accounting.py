from datetime import datetime
from decimal import Decimal

import pytest

from conftest import BUSINESS, NOW, RecordingDelivery
from handymate.core.errors import InvalidTransition
from handymate.server.schemas.common import CustomerIn, LineItemIn
from handymate.server.schemas.invoice import InvoiceCreateIn
from handymate.services import accounting, invoice_service
from handymate.services.document_render import build_rows_html, render_document


@pytest.fixture
def invoice(session, config):
    return invoice_service.create_invoice(
        session=session,
        business_id=BUSINESS,
        config=config,
        now=NOW,
        payload=InvoiceCreateIn(
            customer=CustomerIn(name="Cecilia <Ceder>", address_line="Storgatan 1"),
            lines=[
                LineItemIn(kind="labor", description="Målning", quantity="12.5", unit="h", unit_price=600),
                LineItemIn(kind="material", description="Färg", quantity=3, unit="st", unit_price="449.50"),
            ],
            deduction_type="rut",
            personnummer="811218-9876",
        ),
    )


def _pay(session, config, invoice):
    invoice_service.send_invoice(
        session=session, business_id=BUSINESS, invoice_id=invoice.id, config=config,
        delivery=RecordingDelivery(), now=NOW,
    )
    invoice_service.mark_paid(
        session=session, business_id=BUSINESS, invoice_id=invoice.id, config=config, now=NOW,
        paid_amount="7310.63", payment_method="swish",
    )


def test_ledger_entry_only_for_paid(session, config, invoice):
    with pytest.raises(InvalidTransition):
        accounting.build_ledger_entry(invoice, config.deduction_rules)

    _pay(session, config, invoice)
    entry = accounting.build_ledger_entry(invoice, config.deduction_rules)
    # arbete 7500, material 1348.50, moms 25 %, RUT 50 % av arbete
    assert entry.net_amount == Decimal("8848.50")
    assert entry.vat_amount == Decimal("2212.125")
    assert entry.total == Decimal("11060.625")
    assert entry.deduction_type == "rut"
    assert entry.deduction_amount == Decimal("3750")
    assert entry.customer_pays == Decimal("7310.625")
    assert entry.payment_method == "swish"
    assert entry.ocr == "20240016"
    assert Decimal(entry.as_dict()["paid_amount"]) == Decimal("7310.63")


def test_external_reference_only_on_paid(session, config, invoice):
    with pytest.raises(InvalidTransition):
        accounting.set_external_reference(
            session=session, business_id=BUSINESS, invoice_id=invoice.id, external_ref="FX-1"
        )
    _pay(session, config, invoice)
    updated = accounting.set_external_reference(
        session=session, business_id=BUSINESS, invoice_id=invoice.id, external_ref=" FX-1 "
    )
    assert updated.external_ref == "FX-1"
    assert updated.status == "paid"


def test_rendered_invoice(session, config, invoice):
    html = render_document(invoice, config, is_invoice=True)
    assert "Faktura 2024-001" in html
    assert "Cecilia &lt;Ceder&gt;" in html
    assert "11 061 kr" in html
    assert "RUT-avdrag 50%" in html
    assert "7 311 kr" in html
    assert "20240016" in html
    assert "[[" not in html


def test_rendered_quote_shows_signature(session, config, make_quote):
    quote = make_quote()
    quote.signer_name = "Anna Andersson"
    quote.signed_at = datetime(2024, 3, 2, 9, 0)
    html = render_document(quote, config, is_invoice=False)
    assert "Offert" in html
    assert "Signerad av Anna Andersson 2024-03-02" in html
    assert "Giltig till" in html


def test_rows_html_formats_amounts(invoice):
    rows = build_rows_html(invoice.lines)
    assert "<td>Målning</td>" in rows
    assert '<td class="num">12,5</td>' in rows
    assert '<td class="num">7 500</td>' in rows
