from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlmodel import SQLModel, Field

from handymate.core.clock import utcnow


class LineItemBase(SQLModel):
    kind: str                          # "labor" | "material" | "service"
    description: str = ""
    quantity: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    unit: str = "st"
    unit_price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    # alltid quantity * unit_price, kontrolleras vid läsning
    total: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=4)
    position: int = 0


class DocumentBase(SQLModel):
    business_id: str = Field(index=True)
    customer_id: Optional[int] = Field(default=None, foreign_key="customers.id")
    title: str = ""
    description: Optional[str] = None

    discount_percent: Decimal = Field(default=Decimal("0"), max_digits=5, decimal_places=2)
    vat_rate: Decimal = Field(default=Decimal("25"), max_digits=5, decimal_places=2)

    # ROT/RUT
    deduction_type: Optional[str] = None      # "rot" | "rut" | None
    personnummer: Optional[str] = None
    property_designation: Optional[str] = None  # fastighetsbeteckning (ROT)
    deduction_persons: int = 1

    status: str = Field(default="draft", index=True)
    sent_at: Optional[datetime] = None

    # optimistisk låsning: ökas vid varje skrivning
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)

    # Summor, skrivs om vid varje ändring (för rapporter/bokföring som läser direkt)
    # rabatt och moms har två decimaler, så exakta summor ryms i tolv
    subtotal: Decimal = Field(default=Decimal("0"), max_digits=26, decimal_places=12)
    vat_amount: Decimal = Field(default=Decimal("0"), max_digits=26, decimal_places=12)
    total: Decimal = Field(default=Decimal("0"), max_digits=26, decimal_places=12)
    deduction_amount: Decimal = Field(default=Decimal("0"), max_digits=26, decimal_places=12)
    customer_pays: Decimal = Field(default=Decimal("0"), max_digits=26, decimal_places=12)
