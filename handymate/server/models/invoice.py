from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlmodel import Field, Relationship

from handymate.server.models.base import DocumentBase, LineItemBase
from handymate.server.models.customer import Customer


class Invoice(DocumentBase, table=True):
    __tablename__ = "invoices"

    id: Optional[int] = Field(default=None, primary_key=True)
    invoice_number: str = Field(index=True)      # "2024-001"
    quote_id: Optional[int] = Field(default=None, foreign_key="quotes.id", index=True)

    invoice_date: date
    due_date: date

    paid_at: Optional[datetime] = None
    paid_amount: Optional[Decimal] = Field(default=None, max_digits=18, decimal_places=4)
    payment_method: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    # Påminnelser – påverkar aldrig status
    reminder_sent_at: Optional[datetime] = None
    reminder_count: int = 0

    # Referens från bokföringssystemet (enda tillåtna återskrivningen)
    external_ref: Optional[str] = None

    customer: Optional[Customer] = Relationship()
    lines: List["InvoiceLine"] = Relationship(
        back_populates="invoice",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "InvoiceLine.position"},
    )


class InvoiceLine(LineItemBase, table=True):
    __tablename__ = "invoice_lines"

    id: Optional[int] = Field(default=None, primary_key=True)
    invoice_id: Optional[int] = Field(default=None, foreign_key="invoices.id", index=True)

    invoice: Optional[Invoice] = Relationship(back_populates="lines")
