from datetime import datetime
from typing import Optional

from sqlalchemy import Column, LargeBinary
from sqlmodel import SQLModel, Field

from handymate.core.clock import utcnow


class SigningToken(SQLModel, table=True):
    """
    Engångsnyckel för publik signering av en offert.
    Raderas aldrig – behålls för spårbarhet.
    """

    __tablename__ = "signing_tokens"

    token: str = Field(primary_key=True, max_length=128)
    quote_id: int = Field(foreign_key="quotes.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    consumed_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None


class SignatureArtifact(SQLModel, table=True):
    __tablename__ = "signature_artifacts"

    id: Optional[int] = Field(default=None, primary_key=True)
    quote_id: int = Field(foreign_key="quotes.id", index=True)
    sha256: str = Field(index=True, max_length=64)
    content_type: str = "image/png"
    data: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)
