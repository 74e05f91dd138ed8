from typing import Optional

from pydantic import BaseModel


class SignatureIn(BaseModel):
    signer_name: str = ""
    # data:image/png;base64,... från canvas, eller ren base64
    signature: str = ""


class DeclineIn(BaseModel):
    reason: Optional[str] = None
