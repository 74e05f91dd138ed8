"""
Publik signering av offerter.

Kunden identifieras enbart av en slumpad nyckel i länken
({public_app_url}/quote/{token}). Nyckeln kan förbrukas exakt en gång:
förbrukningen är ett villkorat UPDATE på consumed_at, så av flera
samtidiga signeringar vinner precis en.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from handymate.core.errors import (
    ConcurrentModification,
    ExpiredDocument,
    InvalidTransition,
    MissingRequiredField,
    TokenAlreadyConsumed,
    TokenExpired,
    TokenNotFound,
)
from handymate.core.lifecycle import (
    Actor,
    QuoteAction,
    QuoteStatus,
    is_past_validity,
    plan_quote_expiry,
    plan_quote_transition,
)
from handymate.server.models import Quote, SignatureArtifact, SigningToken
from handymate.services.business_config import BusinessConfig, load_business_config
from handymate.services.persistence import save_changes, unit_of_work
from handymate.services.signature_image import load_signature
from handymate.services.views import business_contact, serialize_quote

logger = logging.getLogger(__name__)

ConfigLoader = Callable[[str], BusinessConfig]

_SIGNABLE = frozenset({QuoteStatus.SENT, QuoteStatus.OPENED})


@dataclass
class QuoteView:
    quote: Dict[str, Any]
    business: Dict[str, Any]
    already_signed: bool = False
    signer_name: Optional[str] = None
    signed_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "quote": self.quote,
            "business": self.business,
            "already_signed": self.already_signed,
            "signer_name": self.signer_name,
            "signed_at": self.signed_at.isoformat() if self.signed_at else None,
        }


@dataclass
class SignatureOutcome:
    status: str                      # "accepted" | "already_signed"
    quote_id: int
    signer_name: Optional[str] = None
    signed_at: Optional[datetime] = None
    signature_ref: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status == "accepted"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "quote_id": self.quote_id,
            "signer_name": self.signer_name,
            "signed_at": self.signed_at.isoformat() if self.signed_at else None,
            "signature_ref": self.signature_ref,
        }


def sign_url(token: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/quote/{token}"


def active_token(session: Session, quote_id: int, now: datetime) -> Optional[SigningToken]:
    return session.exec(
        select(SigningToken)
        .where(
            SigningToken.quote_id == quote_id,
            SigningToken.consumed_at.is_(None),
            SigningToken.revoked_at.is_(None),
            SigningToken.expires_at > now,
        )
        .order_by(SigningToken.created_at.desc())
    ).first()


def create_token(
    session: Session,
    quote_id: int,
    *,
    now: datetime,
    ttl: timedelta,
    rotate: bool = False,
) -> SigningToken:
    """
    Ger en användbar nyckel för offerten. Committar inte.

    Utan rotate återanvänds en aktiv nyckel om en finns. Med rotate spärras
    alla oförbrukade nycklar och en ny skapas.
    """
    if not rotate:
        existing = active_token(session, quote_id, now)
        if existing is not None:
            return existing
    else:
        session.connection().execute(
            update(SigningToken)
            .where(
                SigningToken.quote_id == quote_id,
                SigningToken.consumed_at.is_(None),
                SigningToken.revoked_at.is_(None),
            )
            .values(revoked_at=now)
        )
        logger.info("offert %s: signeringsnycklar spärrade", quote_id)

    tok = SigningToken(
        token=secrets.token_urlsafe(32),
        quote_id=quote_id,
        created_at=now,
        expires_at=now + ttl,
    )
    session.add(tok)
    session.flush()
    logger.info("offert %s: ny signeringsnyckel, giltig till %s", quote_id, tok.expires_at)
    return tok


def issue_token(
    session: Session,
    quote: Quote,
    config: BusinessConfig,
    *,
    now: datetime,
    rotate: bool = False,
) -> SigningToken:
    """
    Företagets anrop för att få (eller rotera) signeringslänk.
    Bara skickade/öppnade offerter kan signeras.
    """
    status = QuoteStatus(quote.status)
    if status not in _SIGNABLE:
        raise InvalidTransition(f"offert med status '{status.value}' kan inte få signeringslänk")
    if is_past_validity(quote, now):
        raise ExpiredDocument(f"offerten var giltig till {quote.valid_until}")

    with unit_of_work(session):
        tok = create_token(session, quote.id, now=now, ttl=config.signing_token_ttl, rotate=rotate)
    session.refresh(tok)
    return tok


def _get_token(session: Session, token: str) -> SigningToken:
    tok = session.get(SigningToken, token) if token else None
    if tok is None:
        raise TokenNotFound("okänd signeringslänk")
    return tok


def _check_token_usable(tok: SigningToken, now: datetime) -> None:
    if tok.consumed_at is not None:
        raise TokenAlreadyConsumed("signeringslänken är redan använd")
    if tok.revoked_at is not None or tok.expires_at <= now:
        raise TokenExpired("signeringslänken har gått ut")


def _signed_view(quote: Quote, config: BusinessConfig) -> QuoteView:
    return QuoteView(
        quote=serialize_quote(quote, config.deduction_rules),
        business=business_contact(config),
        already_signed=True,
        signer_name=quote.signer_name,
        signed_at=quote.signed_at,
    )


def expire_if_due(session: Session, quote: Quote, now: datetime) -> bool:
    """
    Lat utgång: skickad/öppnad offert vars giltighetstid passerat stämplas
    som utgången och sparas. Returnerar True om offerten ändrades.
    """
    changes = plan_quote_expiry(quote, now)
    if not changes:
        return False
    try:
        with unit_of_work(session):
            save_changes(session, quote, changes)
    except ConcurrentModification:
        # Någon annan skrev först, visa det som ligger lagrat
        session.refresh(quote)
        return False
    session.refresh(quote)
    logger.info("offert %s: utgången vid läsning", quote.id)
    return True


def resolve(
    session: Session,
    token: str,
    *,
    now: datetime,
    config_loader: ConfigLoader = load_business_config,
) -> QuoteView:
    """
    Kundens vy av offerten. Signerade offerter kan alltid visas,
    oavsett nyckelns tillstånd.
    """
    tok = _get_token(session, token)
    quote = session.get(Quote, tok.quote_id)
    if quote is None:
        raise TokenNotFound("offerten finns inte längre")
    config = config_loader(quote.business_id)

    if quote.status == QuoteStatus.ACCEPTED.value:
        return _signed_view(quote, config)

    if tok.revoked_at is not None or tok.expires_at <= now:
        raise TokenExpired("signeringslänken har gått ut")

    expire_if_due(session, quote, now)
    if quote.status == QuoteStatus.EXPIRED.value:
        raise ExpiredDocument(f"offerten var giltig till {quote.valid_until}")

    if quote.status == QuoteStatus.SENT.value:
        changes = plan_quote_transition(quote, QuoteAction.OPEN, actor=Actor.CUSTOMER, now=now)
        with unit_of_work(session):
            save_changes(session, quote, changes)
        session.refresh(quote)
        logger.info("offert %s: öppnad av kund", quote.id)

    return QuoteView(
        quote=serialize_quote(quote, config.deduction_rules),
        business=business_contact(config),
    )


def _check_signable(quote: Quote, now: datetime) -> None:
    status = QuoteStatus(quote.status)
    if status is QuoteStatus.EXPIRED or (status in _SIGNABLE and is_past_validity(quote, now)):
        raise ExpiredDocument(f"offerten var giltig till {quote.valid_until}")
    if status not in _SIGNABLE:
        raise InvalidTransition(f"offert med status '{status.value}' kan inte signeras")


def consume_token(session: Session, token: str, now: datetime) -> None:
    """
    Compare-and-swap på consumed_at. Noll rader betyder att någon annan
    hann före.
    """
    result = session.connection().execute(
        update(SigningToken)
        .where(SigningToken.token == token, SigningToken.consumed_at.is_(None))
        .values(consumed_at=now)
    )
    if result.rowcount != 1:
        logger.warning("signeringsnyckel redan förbrukad (samtidig signering)")
        raise TokenAlreadyConsumed("signeringslänken är redan använd")


def submit_signature(
    session: Session,
    token: str,
    signer_name: Optional[str],
    signature: Any,
    *,
    now: datetime,
    signer_ip: Optional[str] = None,
    config_loader: ConfigLoader = load_business_config,
) -> SignatureOutcome:
    tok = _get_token(session, token)
    _check_token_usable(tok, now)

    quote = session.get(Quote, tok.quote_id)
    if quote is None:
        raise TokenNotFound("offerten finns inte längre")

    if quote.status == QuoteStatus.ACCEPTED.value:
        # Signerad med just den här nyckeln under tiden?
        session.refresh(tok)
        if tok.consumed_at is not None:
            raise TokenAlreadyConsumed("signeringslänken är redan använd")
        return SignatureOutcome(
            status="already_signed",
            quote_id=quote.id,
            signer_name=quote.signer_name,
            signed_at=quote.signed_at,
            signature_ref=quote.signature_ref,
        )

    _check_signable(quote, now)
    if not (signer_name or "").strip():
        raise MissingRequiredField("namn krävs för signering", field="signer_name")
    image = load_signature(signature)

    config = config_loader(quote.business_id)
    changes = plan_quote_transition(
        quote,
        QuoteAction.ACCEPT,
        actor=Actor.CUSTOMER,
        now=now,
        rules=config.deduction_rules,
        signer_name=signer_name,
        signature_ref=image.ref,
        signer_ip=signer_ip,
    )

    # Nyckel, status och signatur i samma transaktion
    with unit_of_work(session):
        consume_token(session, tok.token, now)
        save_changes(session, quote, changes)
        session.add(
            SignatureArtifact(
                quote_id=quote.id,
                sha256=image.sha256,
                content_type=image.content_type,
                data=image.data,
                created_at=now,
            )
        )

    session.refresh(quote)
    logger.info("offert %s: signerad av %s", quote.id, quote.signer_name)
    return SignatureOutcome(
        status="accepted",
        quote_id=quote.id,
        signer_name=quote.signer_name,
        signed_at=quote.signed_at,
        signature_ref=quote.signature_ref,
    )


def decline(
    session: Session,
    token: str,
    reason: Optional[str],
    *,
    now: datetime,
    config_loader: ConfigLoader = load_business_config,
) -> QuoteView:
    tok = _get_token(session, token)
    _check_token_usable(tok, now)

    quote = session.get(Quote, tok.quote_id)
    if quote is None:
        raise TokenNotFound("offerten finns inte längre")
    config = config_loader(quote.business_id)

    changes = plan_quote_transition(quote, QuoteAction.DECLINE, actor=Actor.CUSTOMER, now=now, reason=reason)
    if changes:
        with unit_of_work(session):
            save_changes(session, quote, changes)
        session.refresh(quote)
        logger.info("offert %s: nekad av kund", quote.id)

    return QuoteView(
        quote=serialize_quote(quote, config.deduction_rules),
        business=business_contact(config),
    )
