from datetime import date, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import update
from sqlmodel import select

from conftest import BUSINESS, NOW, RecordingDelivery
from handymate.core.errors import (
    ConcurrentModification,
    DataIntegrityError,
    DocumentNotFound,
    InvalidLineItem,
    InvalidTransition,
    MissingRequiredField,
)
from handymate.server.models import Customer, Quote, QuoteLine, SigningToken
from handymate.server.schemas.common import LineItemIn, PricingIn
from handymate.server.schemas.quote import QuoteUpdateIn
from handymate.services import quote_service
from handymate.services.signing import resolve
from handymate.services.views import document_totals, serialize_quote


def _send(session, config, quote_id, delivery=None, now=NOW, **kw):
    return quote_service.send_quote(
        session=session,
        business_id=BUSINESS,
        quote_id=quote_id,
        config=config,
        delivery=delivery or RecordingDelivery(),
        now=now,
        public_app_url="https://app.example.se",
        **kw,
    )


def test_calculate_without_saving(session, config):
    payload = PricingIn(
        lines=[LineItemIn(kind="labor", quantity=10, unit_price=650), LineItemIn(kind="material", quantity=1, unit_price=4000)],
        deduction_type="rot",
    )
    totals = quote_service.calculate_quote(payload, config)
    assert totals.customer_pays == Decimal("11175")
    assert session.exec(select(Quote)).all() == []


def test_create_quote(session, make_quote):
    quote = make_quote()
    assert quote.status == "draft"
    assert quote.version == 0
    assert quote.valid_until == NOW.date() + timedelta(days=30)
    assert [l.kind for l in quote.lines] == ["labor", "material"]
    assert quote.lines[0].total == Decimal("6500")
    assert quote.customer.name == "Anna Andersson"
    assert quote.customer_pays == Decimal("11175")


def test_customer_is_reused(session, make_quote):
    make_quote()
    make_quote()
    assert len(session.exec(select(Customer)).all()) == 1


def test_create_rejects_bad_lines_without_writing(session, make_quote):
    with pytest.raises(InvalidLineItem):
        make_quote(lines=[LineItemIn(kind="labor", quantity=-1, unit_price=100)])
    assert session.exec(select(Quote)).all() == []


def test_other_business_cannot_read(session, make_quote):
    quote = make_quote()
    with pytest.raises(DocumentNotFound):
        quote_service.get_quote(session, "annan", quote.id, now=NOW)


def test_update_draft_replaces_lines(session, config, make_quote):
    quote = make_quote()
    updated = quote_service.update_quote(
        session=session,
        business_id=BUSINESS,
        quote_id=quote.id,
        payload=QuoteUpdateIn(lines=[LineItemIn(kind="labor", quantity=2, unit_price=500)], discount_percent=10),
        config=config,
        now=NOW,
        expected_version=0,
    )
    assert updated.version == 1
    assert len(updated.lines) == 1
    assert updated.discount_percent == Decimal("10")
    assert updated.subtotal == Decimal("1000")
    assert len(session.exec(select(QuoteLine)).all()) == 1


def test_update_with_stale_version(session, config, make_quote):
    quote = make_quote()
    with pytest.raises(ConcurrentModification):
        quote_service.update_quote(
            session=session, business_id=BUSINESS, quote_id=quote.id,
            payload=QuoteUpdateIn(title="Ny"), config=config, now=NOW, expected_version=5,
        )
    session.refresh(quote)
    assert quote.title == "Badrumsrenovering"


def test_send_issues_token_and_delivers(session, config, make_quote):
    quote = make_quote()
    delivery = RecordingDelivery()
    result = _send(session, config, quote.id, delivery)
    assert result.quote.status == "sent"
    assert result.quote.sent_at == NOW
    assert result.sign_url == f"https://app.example.se/quote/{result.token.token}"
    assert result.delivered is True
    assert result.token.expires_at == NOW + timedelta(days=30)
    assert delivery.sent[0].link == result.sign_url


def test_send_twice_is_noop(session, config, make_quote):
    quote = make_quote()
    first = _send(session, config, quote.id)
    delivery = RecordingDelivery()
    again = _send(session, config, quote.id, delivery, now=NOW + timedelta(days=1))
    assert again.quote.sent_at == NOW
    assert again.quote.version == first.quote.version
    assert again.token.token == first.token.token
    assert again.delivered is None
    assert delivery.sent == []
    assert len(session.exec(select(SigningToken)).all()) == 1


def test_failed_delivery_still_stamps_sent(session, config, make_quote):
    quote = make_quote()
    result = _send(session, config, quote.id, RecordingDelivery(ok=False))
    assert result.delivered is False
    assert result.quote.status == "sent"


def test_delivery_exception_is_reported_as_failure(session, config, make_quote):
    class Broken:
        def deliver(self, message):
            raise RuntimeError("SMS-tjänsten svarar inte")

    quote = make_quote()
    result = _send(session, config, quote.id, Broken())
    assert result.delivered is False
    assert result.quote.status == "sent"


def test_send_without_personnummer_leaves_quote_untouched(session, config, make_quote):
    quote = make_quote(personnummer=None)
    with pytest.raises(MissingRequiredField):
        _send(session, config, quote.id)
    session.refresh(quote)
    assert quote.status == "draft"
    assert quote.version == 0
    assert session.exec(select(SigningToken)).all() == []


def test_sent_quote_is_not_editable(session, config, sent_quote):
    with pytest.raises(InvalidTransition):
        quote_service.update_quote(
            session=session, business_id=BUSINESS, quote_id=sent_quote.quote.id,
            payload=QuoteUpdateIn(title="Ny"), config=config, now=NOW,
        )


def test_lazy_expiry_on_read(session, sent_quote):
    later = NOW + timedelta(days=31)
    quote = quote_service.get_quote(session, BUSINESS, sent_quote.quote.id, now=later)
    assert quote.status == "expired"
    listed = quote_service.list_quotes(session, BUSINESS, now=later, status="expired")
    assert [q.id for q in listed] == [quote.id]


def test_tampered_line_total_is_detected(session, config, make_quote):
    quote = make_quote()
    session.connection().execute(
        update(QuoteLine).where(QuoteLine.quote_id == quote.id, QuoteLine.kind == "labor").values(total=1)
    )
    session.commit()
    with pytest.raises(DataIntegrityError):
        serialize_quote(quote_service.get_quote(session, BUSINESS, quote.id, now=NOW), config.deduction_rules)


def test_valid_until_can_be_given(make_quote):
    quote = make_quote(valid_until=date(2024, 4, 15))
    assert quote.valid_until == date(2024, 4, 15)


def test_send_after_customer_opened_is_rejected(session, config, sent_quote):
    resolve(session, sent_quote.token.token, now=NOW, config_loader=lambda business_id: config)
    delivery = RecordingDelivery()
    with pytest.raises(InvalidTransition):
        _send(session, config, sent_quote.quote.id, delivery)
    session.refresh(sent_quote.quote)
    assert sent_quote.quote.status == "opened"
    assert delivery.sent == []


def test_percent_with_three_decimals_is_rejected():
    with pytest.raises(ValidationError):
        PricingIn(lines=[], discount_percent="12.345")
    with pytest.raises(ValidationError):
        QuoteUpdateIn(vat_rate="25.001")
    with pytest.raises(ValidationError):
        PricingIn(lines=[], discount_percent="100.01")


def test_stored_totals_match_recomputed(session, config, make_quote):
    quote = make_quote(discount_percent=Decimal("12.35"))
    calculated = quote_service.calculate_quote(
        PricingIn(
            lines=[LineItemIn(kind=l.kind, quantity=l.quantity, unit_price=l.unit_price) for l in quote.lines],
            discount_percent="12.35",
            deduction_type="rot",
        ),
        config,
    )
    session.expire_all()
    reread = quote_service.get_quote(session, BUSINESS, quote.id, now=NOW)
    recomputed = document_totals(reread, config.deduction_rules)
    assert reread.discount_percent == Decimal("12.35")
    assert recomputed.customer_pays == calculated.customer_pays == Decimal("9554.0625")
    assert reread.total == recomputed.total == Decimal("11504.0625")
    assert reread.customer_pays == recomputed.customer_pays
