from datetime import date
from typing import Optional

from handymate.server.schemas.common import DocumentIn, DocumentUpdateIn


class QuoteCreateIn(DocumentIn):
    valid_until: Optional[date] = None   # None → idag + quote_valid_days


class QuoteUpdateIn(DocumentUpdateIn):
    valid_until: Optional[date] = None
