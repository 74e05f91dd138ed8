from datetime import date, datetime
from typing import List, Optional

from sqlmodel import Field, Relationship

from handymate.server.models.base import DocumentBase, LineItemBase
from handymate.server.models.customer import Customer


class Quote(DocumentBase, table=True):
    __tablename__ = "quotes"

    id: Optional[int] = Field(default=None, primary_key=True)
    valid_until: Optional[date] = None

    opened_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    decline_reason: Optional[str] = None

    # Signering
    signed_at: Optional[datetime] = None
    signer_name: Optional[str] = None
    signer_ip: Optional[str] = None
    signature_ref: Optional[str] = None     # "sha256:<hex>"

    customer: Optional[Customer] = Relationship()
    lines: List["QuoteLine"] = Relationship(
        back_populates="quote",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "QuoteLine.position"},
    )


class QuoteLine(LineItemBase, table=True):
    __tablename__ = "quote_lines"

    id: Optional[int] = Field(default=None, primary_key=True)
    quote_id: Optional[int] = Field(default=None, foreign_key="quotes.id", index=True)

    quote: Optional[Quote] = Relationship(back_populates="lines")
