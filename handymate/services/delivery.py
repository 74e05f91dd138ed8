"""
Leverans av dokument och påminnelser (SMS/e-post).

Motorn behöver bara veta om leveransen gick bra. "Skickad" betyder att
dokumentet gjorts tillgängligt – status och tidsstämplar sätts oavsett
utfall.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    name: str = ""
    email: Optional[str] = None
    phone_number: Optional[str] = None


@dataclass(frozen=True)
class Message:
    recipient: Recipient
    subject: str
    body: str
    link: Optional[str] = None


class DeliveryChannel(Protocol):
    def deliver(self, message: Message) -> bool:
        ...


class LoggingDelivery:
    """
    Standardkanal: loggar meddelandet och rapporterar lyckat.
    Riktiga SMS/e-post-leverantörer kopplas in utanför motorn.
    """

    def deliver(self, message: Message) -> bool:
        logger.info(
            "leverans till %s (%s): %s",
            message.recipient.name,
            message.recipient.email or message.recipient.phone_number or "-",
            message.subject,
        )
        return True


def recipient_for(customer) -> Recipient:
    if customer is None:
        return Recipient()
    return Recipient(name=customer.name or "", email=customer.email, phone_number=customer.phone_number)


def deliver(channel: DeliveryChannel, message: Message) -> bool:
    """
    Skicka via channel. Fel från leverantören loggas och ger False.
    """
    try:
        ok = bool(channel.deliver(message))
    except Exception:
        logger.exception("leverans misslyckades: %s", message.subject)
        return False
    if not ok:
        logger.warning("leverans ej bekräftad: %s", message.subject)
    return ok
