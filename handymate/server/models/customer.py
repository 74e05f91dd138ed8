from typing import Optional

from sqlmodel import SQLModel, Field


class Customer(SQLModel, table=True):
    __tablename__ = "customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    business_id: str = Field(index=True)
    name: str
    email: Optional[str] = Field(default=None, index=True)
    phone_number: Optional[str] = None
    address_line: Optional[str] = None
