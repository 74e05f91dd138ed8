from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from handymate.server.schemas.common import DocumentIn, DocumentUpdateIn


class InvoiceCreateIn(DocumentIn):
    invoice_date: Optional[date] = None  # None → idag
    due_date: Optional[date] = None      # None → invoice_date + invoice_due_days


class InvoiceUpdateIn(DocumentUpdateIn):
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None


class PaymentIn(BaseModel):
    paid_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None


class ExternalRefIn(BaseModel):
    external_ref: str
