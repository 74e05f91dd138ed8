from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class LineItemIn(BaseModel):
    # kind valideras av kalkylatorn (labor/material/service)
    kind: str
    description: str = ""
    quantity: Decimal = Field(max_digits=12, decimal_places=2)
    unit: str = "st"
    unit_price: Decimal = Field(max_digits=12, decimal_places=2)


class CustomerIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address_line: Optional[str] = None


class PricingIn(BaseModel):
    """
    Det som behövs för att räkna fram summor. vat_rate None → företagets standardmoms.
    """
    lines: List[LineItemIn] = []
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    vat_rate: Optional[Decimal] = Field(default=None, ge=0, max_digits=5, decimal_places=2)
    deduction_type: Optional[str] = None
    deduction_persons: int = 1


class DocumentIn(PricingIn):
    customer: Optional[CustomerIn] = None
    title: str = ""
    description: Optional[str] = None
    personnummer: Optional[str] = None
    property_designation: Optional[str] = None


class DocumentUpdateIn(BaseModel):
    """
    Ändring av utkast. Bara fält som skickas med ändras.
    """
    lines: Optional[List[LineItemIn]] = None
    discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100, max_digits=5, decimal_places=2)
    vat_rate: Optional[Decimal] = Field(default=None, ge=0, max_digits=5, decimal_places=2)
    deduction_type: Optional[str] = None
    deduction_persons: Optional[int] = None
    customer: Optional[CustomerIn] = None
    title: Optional[str] = None
    description: Optional[str] = None
    personnummer: Optional[str] = None
    property_designation: Optional[str] = None
