"""
Förfallna fakturor och påminnelser.

Förfallen-status härleds enbart från förfallodatum och status, aldrig från
påminnelsebokföringen. Påminnelser kan därför skickas flera gånger utan att
fakturans livscykel påverkas.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from handymate.core.errors import InvalidTransition
from handymate.core.lifecycle import InvoiceStatus
from handymate.core.money import format_sek

DEFAULT_COOLDOWN = timedelta(days=7)

DEFAULT_REMINDER_TEMPLATE = (
    "Påminnelse: Faktura {invoice_number} på {amount} kr förföll {due_date}. "
    "Betala till {payment_details}. OCR: {ocr}. "
    "Frågor? Ring {phone_number}. //{business_name}"
)

_OVERDUE_CAPABLE = frozenset({InvoiceStatus.SENT, InvoiceStatus.OVERDUE})


def _as_date(value: Any) -> date:
    return value.date() if isinstance(value, datetime) else value


def is_overdue(status: Any, due_date: Optional[date], now: datetime) -> bool:
    """
    Skickad (eller redan förfallen-stämplad) faktura vars förfallodag passerats.
    """
    if due_date is None:
        return False
    try:
        current = InvoiceStatus(status)
    except ValueError:
        return False
    return current in _OVERDUE_CAPABLE and _as_date(now) > due_date


def days_overdue(due_date: Optional[date], now: datetime) -> int:
    if due_date is None:
        return 0
    return max((_as_date(now) - due_date).days, 0)


def reminder_eligible(invoice: Any, now: datetime, cooldown: timedelta = DEFAULT_COOLDOWN) -> bool:
    """
    Påminnelse får skickas när fakturan är förfallen och ingen påminnelse
    skickats inom cooldown-perioden.
    """
    if not is_overdue(invoice.status, invoice.due_date, now):
        return False
    last = getattr(invoice, "reminder_sent_at", None)
    return last is None or now - last > cooldown


@dataclass(frozen=True)
class ReminderStamp:
    reminder_count: int
    reminder_sent_at: datetime

    def as_changes(self) -> Dict[str, Any]:
        return {"reminder_count": self.reminder_count, "reminder_sent_at": self.reminder_sent_at}


def plan_reminder(invoice: Any, now: datetime, cooldown: timedelta = DEFAULT_COOLDOWN) -> ReminderStamp:
    """
    Bokföring för en skickad påminnelse. Status rörs aldrig.
    """
    if not reminder_eligible(invoice, now, cooldown):
        raise InvalidTransition(
            f"faktura {getattr(invoice, 'invoice_number', None) or getattr(invoice, 'id', '')} "
            "kan inte påminnas nu (inte förfallen eller nyligen påmind)"
        )
    return ReminderStamp(
        reminder_count=(getattr(invoice, "reminder_count", 0) or 0) + 1,
        reminder_sent_at=now,
    )


def build_reminder_message(
    *,
    template: Optional[str],
    invoice_number: str,
    amount: Any,
    due_date: date,
    ocr: str,
    business_name: str,
    phone_number: str = "",
    bankgiro: str = "",
    swish_number: str = "",
    late_fee_percent: Any = 8,
    now: datetime,
) -> str:
    """
    Fyller i påminnelsemallen. Okända platshållare lämnas orörda.
    """
    payment_parts = []
    if bankgiro:
        payment_parts.append(f"bankgiro {bankgiro}")
    if swish_number:
        payment_parts.append(f"Swish {swish_number}")

    values = {
        "invoice_number": invoice_number or "",
        "amount": format_sek(amount) or "0",
        "due_date": due_date.isoformat() if due_date else "",
        "ocr": ocr or "",
        "business_name": business_name or "Företaget",
        "phone_number": phone_number or "",
        "payment_details": " eller ".join(payment_parts),
        "days_overdue": str(days_overdue(due_date, now)),
        "late_fee_percent": str(late_fee_percent),
    }

    message = template or DEFAULT_REMINDER_TEMPLATE
    for key, value in values.items():
        message = message.replace("{" + key + "}", value)
    return message
