"""
Livscykel för offerter och fakturor.

Offert:  draft -> sent -> opened -> accepted | declined
         sent/opened -> expired (när valid_until har passerat)
Faktura: draft -> sent -> paid | overdue -> paid
         draft/sent -> cancelled

Varje övergång planeras först (plan_*_transition) och returnerar en dict
med de fält som ska skrivas. Planeringen muterar aldrig dokumentet, så ett
fel lämnar alltid dokumentet exakt som det var. En tom dict betyder att
dokumentet redan står i målstatus (idempotent no-op).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from handymate.core.calculator import calculate_document_totals
from handymate.core.errors import (
    AlreadyAccepted,
    CalculationError,
    ExpiredDocument,
    InvalidTransition,
    MissingRequiredField,
)
from handymate.core.money import ZERO, to_decimal
from handymate.core.personnummer import is_valid_personnummer
from handymate.rot_rut import DeductionRules, DeductionType, parse_deduction_type

logger = logging.getLogger(__name__)


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    OPENED = "opened"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Actor(str, Enum):
    BUSINESS = "business"
    CUSTOMER = "customer"
    SYSTEM = "system"


class QuoteAction(str, Enum):
    SEND = "send"
    OPEN = "open"
    ACCEPT = "accept"
    DECLINE = "decline"
    EXPIRE = "expire"


class InvoiceAction(str, Enum):
    SEND = "send"
    MARK_PAID = "mark_paid"
    MARK_OVERDUE = "mark_overdue"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Transition:
    sources: FrozenSet[Enum]
    target: Enum
    actor: Actor


QUOTE_TRANSITIONS: Dict[QuoteAction, Transition] = {
    QuoteAction.SEND: Transition(frozenset({QuoteStatus.DRAFT}), QuoteStatus.SENT, Actor.BUSINESS),
    QuoteAction.OPEN: Transition(frozenset({QuoteStatus.SENT}), QuoteStatus.OPENED, Actor.CUSTOMER),
    QuoteAction.ACCEPT: Transition(
        frozenset({QuoteStatus.SENT, QuoteStatus.OPENED}), QuoteStatus.ACCEPTED, Actor.CUSTOMER
    ),
    QuoteAction.DECLINE: Transition(
        frozenset({QuoteStatus.SENT, QuoteStatus.OPENED}), QuoteStatus.DECLINED, Actor.CUSTOMER
    ),
    QuoteAction.EXPIRE: Transition(
        frozenset({QuoteStatus.SENT, QuoteStatus.OPENED}), QuoteStatus.EXPIRED, Actor.SYSTEM
    ),
}

INVOICE_TRANSITIONS: Dict[InvoiceAction, Transition] = {
    InvoiceAction.SEND: Transition(frozenset({InvoiceStatus.DRAFT}), InvoiceStatus.SENT, Actor.BUSINESS),
    InvoiceAction.MARK_PAID: Transition(
        frozenset({InvoiceStatus.SENT, InvoiceStatus.OVERDUE}), InvoiceStatus.PAID, Actor.BUSINESS
    ),
    InvoiceAction.MARK_OVERDUE: Transition(
        frozenset({InvoiceStatus.SENT}), InvoiceStatus.OVERDUE, Actor.SYSTEM
    ),
    InvoiceAction.CANCEL: Transition(
        frozenset({InvoiceStatus.DRAFT, InvoiceStatus.SENT}), InvoiceStatus.CANCELLED, Actor.BUSINESS
    ),
}

QUOTE_TERMINAL = frozenset({QuoteStatus.ACCEPTED, QuoteStatus.DECLINED, QuoteStatus.EXPIRED})
INVOICE_TERMINAL = frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED})

_CUSTOMER_QUOTE_ACTIONS = frozenset({QuoteAction.OPEN, QuoteAction.ACCEPT, QuoteAction.DECLINE})


def _today(now: datetime) -> date:
    return now.date() if isinstance(now, datetime) else now


def is_past_validity(quote: Any, now: datetime) -> bool:
    valid_until = getattr(quote, "valid_until", None)
    return valid_until is not None and _today(now) > valid_until


def _check_actor(transition: Transition, actor: Actor, action: Enum) -> None:
    if actor is not transition.actor:
        raise InvalidTransition(
            f"'{action.value}' får bara utföras av {transition.actor.value}, inte {actor.value}"
        )


def _check_deduction_identifiers(doc: Any) -> None:
    """
    ROT kräver fastighetsbeteckning, både ROT och RUT kräver personnummer.
    """
    dtype = parse_deduction_type(getattr(doc, "deduction_type", None))
    if dtype is None:
        return

    if dtype is DeductionType.ROT and not (getattr(doc, "property_designation", None) or "").strip():
        raise MissingRequiredField("fastighetsbeteckning krävs för ROT-avdrag", field="property_designation")

    personnummer = (getattr(doc, "personnummer", None) or "").strip()
    if not personnummer:
        raise MissingRequiredField(
            f"personnummer krävs för {dtype.value.upper()}-avdrag", field="personnummer"
        )
    if not is_valid_personnummer(personnummer):
        raise MissingRequiredField("personnumret är ogiltigt", field="personnummer")


def _check_sendable(doc: Any, rules: Optional[DeductionRules]) -> None:
    if not list(getattr(doc, "lines", None) or []):
        raise MissingRequiredField("dokumentet saknar rader", field="lines")

    _check_deduction_identifiers(doc)

    try:
        calculate_document_totals(doc, rules)
    except CalculationError as e:
        raise InvalidTransition(f"summorna kan inte räknas fram: {e.message}") from e


# ---------------------------------------------------------------------------
# Offert
# ---------------------------------------------------------------------------

def plan_quote_transition(
    quote: Any,
    action: QuoteAction,
    *,
    actor: Actor,
    now: datetime,
    rules: Optional[DeductionRules] = None,
    signer_name: Optional[str] = None,
    signature_ref: Optional[str] = None,
    signer_ip: Optional[str] = None,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    transition = QUOTE_TRANSITIONS[action]
    status = QuoteStatus(quote.status)

    _check_actor(transition, actor, action)

    if status is transition.target:
        if action is QuoteAction.ACCEPT:
            raise AlreadyAccepted("offerten är redan accepterad")
        return {}

    if action in _CUSTOMER_QUOTE_ACTIONS:
        if status is QuoteStatus.EXPIRED:
            raise ExpiredDocument("offerten har gått ut")
        if status in transition.sources and is_past_validity(quote, now):
            raise ExpiredDocument(f"offerten var giltig till {quote.valid_until}")

    if status not in transition.sources:
        raise InvalidTransition(f"offert kan inte gå från '{status.value}' via '{action.value}'")

    changes: Dict[str, Any] = {"status": transition.target.value}

    if action is QuoteAction.SEND:
        if not getattr(quote, "customer_id", None):
            raise MissingRequiredField("offerten saknar kund", field="customer_id")
        _check_sendable(quote, rules)
        changes["sent_at"] = now

    elif action is QuoteAction.OPEN:
        if getattr(quote, "opened_at", None) is None:
            changes["opened_at"] = now

    elif action is QuoteAction.ACCEPT:
        if not (signer_name or "").strip():
            raise MissingRequiredField("namn krävs för signering", field="signer_name")
        if not signature_ref:
            raise MissingRequiredField("signatur krävs", field="signature")
        changes.update(
            accepted_at=now,
            signed_at=now,
            signer_name=signer_name.strip(),
            signature_ref=signature_ref,
            signer_ip=signer_ip,
        )

    elif action is QuoteAction.DECLINE:
        changes["declined_at"] = now
        changes["decline_reason"] = (reason or "").strip() or None

    elif action is QuoteAction.EXPIRE:
        if not is_past_validity(quote, now):
            raise InvalidTransition(f"offerten är giltig till {quote.valid_until}")

    return changes


def plan_quote_expiry(quote: Any, now: datetime) -> Dict[str, Any]:
    """
    Lat utgångskontroll vid läsning: ger ändringarna för sent/opened -> expired
    om giltighetstiden har passerat, annars tom dict.
    """
    status = QuoteStatus(quote.status)
    if status in (QuoteStatus.SENT, QuoteStatus.OPENED) and is_past_validity(quote, now):
        return plan_quote_transition(quote, QuoteAction.EXPIRE, actor=Actor.SYSTEM, now=now)
    return {}


# ---------------------------------------------------------------------------
# Faktura
# ---------------------------------------------------------------------------

def plan_invoice_transition(
    invoice: Any,
    action: InvoiceAction,
    *,
    actor: Actor,
    now: datetime,
    rules: Optional[DeductionRules] = None,
    paid_at: Optional[datetime] = None,
    paid_amount: Any = None,
    payment_method: Optional[str] = None,
) -> Dict[str, Any]:
    transition = INVOICE_TRANSITIONS[action]
    status = InvoiceStatus(invoice.status)

    _check_actor(transition, actor, action)

    if status is transition.target:
        return {}

    if status not in transition.sources:
        raise InvalidTransition(f"faktura kan inte gå från '{status.value}' via '{action.value}'")

    changes: Dict[str, Any] = {"status": transition.target.value}

    if action is InvoiceAction.SEND:
        _check_sendable(invoice, rules)
        changes["sent_at"] = now

    elif action is InvoiceAction.MARK_PAID:
        if not (payment_method or "").strip():
            raise MissingRequiredField("betalningssätt krävs", field="payment_method")
        if paid_amount is None:
            raise MissingRequiredField("betalt belopp krävs", field="paid_amount")
        try:
            amount = to_decimal(paid_amount)
        except ValueError as e:
            raise MissingRequiredField(f"ogiltigt belopp: {paid_amount!r}", field="paid_amount") from e
        if amount < ZERO:
            raise MissingRequiredField("betalt belopp får inte vara negativt", field="paid_amount")
        changes.update(
            paid_at=paid_at or now,
            paid_amount=amount,
            payment_method=payment_method.strip(),
        )

    elif action is InvoiceAction.MARK_OVERDUE:
        due_date = getattr(invoice, "due_date", None)
        if due_date is None or not _today(now) > due_date:
            raise InvalidTransition(f"fakturan har inte förfallit (förfallodag {due_date})")

    elif action is InvoiceAction.CANCEL:
        changes["cancelled_at"] = now

    return changes


# ---------------------------------------------------------------------------

def apply_changes(doc: Any, changes: Dict[str, Any]) -> Any:
    for key, value in changes.items():
        setattr(doc, key, value)
    return doc


def transition_quote(quote: Any, action: QuoteAction, **kwargs: Any) -> Dict[str, Any]:
    """Planera och applicera direkt på objektet (utan lagring)."""
    changes = plan_quote_transition(quote, action, **kwargs)
    apply_changes(quote, changes)
    if changes:
        logger.info("offert %s: %s -> %s", getattr(quote, "id", None), action.value, changes["status"])
    return changes


def transition_invoice(invoice: Any, action: InvoiceAction, **kwargs: Any) -> Dict[str, Any]:
    changes = plan_invoice_transition(invoice, action, **kwargs)
    apply_changes(invoice, changes)
    if changes:
        logger.info("faktura %s: %s -> %s", getattr(invoice, "id", None), action.value, changes["status"])
    return changes
