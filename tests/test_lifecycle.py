from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from handymate.core.errors import (
    AlreadyAccepted,
    ExpiredDocument,
    InvalidTransition,
    MissingRequiredField,
)
from handymate.core.lifecycle import (
    INVOICE_TRANSITIONS,
    QUOTE_TRANSITIONS,
    Actor,
    InvoiceAction,
    InvoiceStatus,
    QuoteAction,
    QuoteStatus,
    plan_quote_expiry,
    transition_invoice,
    transition_quote,
)
from handymate.server.models import Invoice, InvoiceLine, Quote, QuoteLine

NOW = datetime(2024, 3, 1, 12, 0)


def _quote(status="draft", **kw):
    data = dict(
        id=1,
        business_id="biz",
        customer_id=1,
        status=status,
        valid_until=date(2024, 3, 31),
        deduction_type="rot",
        personnummer="811218-9876",
        property_designation="Söder 1:23",
    )
    data.update(kw)
    q = Quote(**data)
    q.lines = [QuoteLine(kind="labor", quantity=Decimal("10"), unit_price=Decimal("650"), total=Decimal("6500"))]
    return q


def _invoice(status="draft", **kw):
    data = dict(
        id=1,
        business_id="biz",
        customer_id=1,
        invoice_number="2024-001",
        invoice_date=date(2024, 2, 1),
        due_date=date(2024, 2, 29),
        status=status,
    )
    data.update(kw)
    inv = Invoice(**data)
    inv.lines = [InvoiceLine(kind="material", quantity=Decimal("1"), unit_price=Decimal("100"), total=Decimal("100"))]
    return inv


def _kwargs_for(action):
    if action is QuoteAction.ACCEPT:
        return {"signer_name": "Anna", "signature_ref": "sha256:abc"}
    if action is InvoiceAction.MARK_PAID:
        return {"paid_amount": 100, "payment_method": "bankgiro"}
    return {}


# ---------------------------------------------------------------------------
# Offert
# ---------------------------------------------------------------------------

def test_send_sets_sent_at():
    q = _quote()
    transition_quote(q, QuoteAction.SEND, actor=Actor.BUSINESS, now=NOW)
    assert q.status == "sent"
    assert q.sent_at == NOW


def test_resend_keeps_sent_at():
    q = _quote()
    transition_quote(q, QuoteAction.SEND, actor=Actor.BUSINESS, now=NOW)
    changes = transition_quote(q, QuoteAction.SEND, actor=Actor.BUSINESS, now=NOW + timedelta(days=1))
    assert changes == {}
    assert q.sent_at == NOW


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"customer_id": None}, "customer_id"),
        ({"property_designation": None}, "property_designation"),
        ({"personnummer": None}, "personnummer"),
        ({"personnummer": "811218-9875"}, "personnummer"),
    ],
)
def test_send_requires_fields(overrides, field):
    q = _quote(**overrides)
    before = q.model_dump()
    with pytest.raises(MissingRequiredField) as exc:
        transition_quote(q, QuoteAction.SEND, actor=Actor.BUSINESS, now=NOW)
    assert exc.value.field == field
    assert q.model_dump() == before


def test_send_requires_lines():
    q = _quote()
    q.lines = []
    with pytest.raises(MissingRequiredField):
        transition_quote(q, QuoteAction.SEND, actor=Actor.BUSINESS, now=NOW)


def test_rut_does_not_need_property_designation():
    q = _quote(deduction_type="rut", property_designation=None)
    transition_quote(q, QuoteAction.SEND, actor=Actor.BUSINESS, now=NOW)
    assert q.status == "sent"


def test_open_sets_opened_at_once():
    q = _quote("sent")
    transition_quote(q, QuoteAction.OPEN, actor=Actor.CUSTOMER, now=NOW)
    assert q.opened_at == NOW
    assert transition_quote(q, QuoteAction.OPEN, actor=Actor.CUSTOMER, now=NOW + timedelta(hours=1)) == {}
    assert q.opened_at == NOW


def test_accept_sets_signer_fields():
    q = _quote("opened")
    transition_quote(
        q, QuoteAction.ACCEPT, actor=Actor.CUSTOMER, now=NOW,
        signer_name=" Anna Andersson ", signature_ref="sha256:abc", signer_ip="10.0.0.1",
    )
    assert q.status == "accepted"
    assert q.accepted_at == q.signed_at == NOW
    assert q.signer_name == "Anna Andersson"
    assert q.signature_ref == "sha256:abc"


def test_accept_twice_is_already_accepted():
    q = _quote("accepted")
    with pytest.raises(AlreadyAccepted):
        transition_quote(q, QuoteAction.ACCEPT, actor=Actor.CUSTOMER, now=NOW, **_kwargs_for(QuoteAction.ACCEPT))


def test_accept_declined_fails():
    q = _quote("declined")
    with pytest.raises(InvalidTransition):
        transition_quote(q, QuoteAction.ACCEPT, actor=Actor.CUSTOMER, now=NOW, **_kwargs_for(QuoteAction.ACCEPT))


def test_accept_requires_name_and_signature():
    q = _quote("sent")
    with pytest.raises(MissingRequiredField):
        transition_quote(q, QuoteAction.ACCEPT, actor=Actor.CUSTOMER, now=NOW, signer_name=" ", signature_ref="x")
    with pytest.raises(MissingRequiredField):
        transition_quote(q, QuoteAction.ACCEPT, actor=Actor.CUSTOMER, now=NOW, signer_name="Anna")
    assert q.status == "sent"


def test_decline_records_reason():
    q = _quote("sent")
    transition_quote(q, QuoteAction.DECLINE, actor=Actor.CUSTOMER, now=NOW, reason="För dyrt")
    assert q.status == "declined"
    assert q.declined_at == NOW
    assert q.decline_reason == "För dyrt"


def test_customer_actions_fail_after_validity():
    q = _quote("sent", valid_until=date(2024, 2, 28))
    with pytest.raises(ExpiredDocument):
        transition_quote(q, QuoteAction.ACCEPT, actor=Actor.CUSTOMER, now=NOW, **_kwargs_for(QuoteAction.ACCEPT))
    assert q.status == "sent"


def test_expiry_only_after_valid_until():
    q = _quote("sent", valid_until=date(2024, 3, 1))
    assert plan_quote_expiry(q, NOW) == {}
    assert plan_quote_expiry(q, NOW + timedelta(days=1)) == {"status": "expired"}
    assert plan_quote_expiry(_quote("accepted", valid_until=date(2024, 1, 1)), NOW) == {}


def test_wrong_actor():
    q = _quote()
    with pytest.raises(InvalidTransition):
        transition_quote(q, QuoteAction.SEND, actor=Actor.CUSTOMER, now=NOW)
    assert q.status == "draft"


def _missing_pairs(transitions, statuses):
    for action, t in transitions.items():
        for status in statuses:
            if status not in t.sources and status is not t.target:
                yield status, action


@pytest.mark.parametrize("status,action", list(_missing_pairs(QUOTE_TRANSITIONS, QuoteStatus)))
def test_quote_transition_closure(status, action):
    q = _quote(status.value)
    before = q.model_dump()
    with pytest.raises(InvalidTransition):
        transition_quote(q, action, actor=QUOTE_TRANSITIONS[action].actor, now=NOW, **_kwargs_for(action))
    assert q.model_dump() == before


# ---------------------------------------------------------------------------
# Faktura
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("status,action", list(_missing_pairs(INVOICE_TRANSITIONS, InvoiceStatus)))
def test_invoice_transition_closure(status, action):
    inv = _invoice(status.value)
    before = inv.model_dump()
    with pytest.raises(InvalidTransition):
        transition_invoice(inv, action, actor=INVOICE_TRANSITIONS[action].actor, now=NOW, **_kwargs_for(action))
    assert inv.model_dump() == before


def test_invoice_paid_requires_payment_details():
    inv = _invoice("sent")
    with pytest.raises(MissingRequiredField):
        transition_invoice(inv, InvoiceAction.MARK_PAID, actor=Actor.BUSINESS, now=NOW, paid_amount=100)
    with pytest.raises(MissingRequiredField):
        transition_invoice(inv, InvoiceAction.MARK_PAID, actor=Actor.BUSINESS, now=NOW, payment_method="swish")
    assert inv.status == "sent"

    transition_invoice(
        inv, InvoiceAction.MARK_PAID, actor=Actor.BUSINESS, now=NOW, paid_amount="100", payment_method="swish"
    )
    assert inv.status == "paid"
    assert inv.paid_at == NOW
    assert inv.paid_amount == Decimal("100")


def test_overdue_then_paid():
    inv = _invoice("sent")
    transition_invoice(inv, InvoiceAction.MARK_OVERDUE, actor=Actor.SYSTEM, now=NOW)
    assert inv.status == "overdue"
    transition_invoice(inv, InvoiceAction.MARK_PAID, actor=Actor.BUSINESS, now=NOW, **_kwargs_for(InvoiceAction.MARK_PAID))
    assert inv.status == "paid"


def test_overdue_requires_passed_due_date():
    inv = _invoice("sent", due_date=date(2024, 3, 1))
    with pytest.raises(InvalidTransition):
        transition_invoice(inv, InvoiceAction.MARK_OVERDUE, actor=Actor.SYSTEM, now=NOW)


def test_cancel_never_after_paid():
    inv = _invoice("paid")
    with pytest.raises(InvalidTransition):
        transition_invoice(inv, InvoiceAction.CANCEL, actor=Actor.BUSINESS, now=NOW)
    draft = _invoice()
    transition_invoice(draft, InvoiceAction.CANCEL, actor=Actor.BUSINESS, now=NOW)
    assert draft.status == "cancelled"
    assert draft.cancelled_at == NOW
