"""
Kontroll av signaturbilder från signeringssidan.

Klienten ser till att kunden ritat något innan den skickar, men servern
kontrollerar själv: bilden måste gå att avkoda och får inte vara tom
(helt genomskinlig eller en enda enfärgad yta).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import io
import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from handymate.core.errors import InvalidSignature

_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=-]+)*?;base64,(?P<data>.*)$", re.DOTALL)

# Skydd mot orimligt stora uppladdningar
MAX_SIGNATURE_BYTES = 2 * 1024 * 1024


@dataclass(frozen=True)
class SignatureImage:
    data: bytes
    content_type: str
    sha256: str
    width: int
    height: int

    @property
    def ref(self) -> str:
        return f"sha256:{self.sha256}"


def decode_payload(payload: Union[str, bytes, None]) -> Tuple[bytes, Optional[str]]:
    """
    data:image/png;base64,... eller ren base64 → (bytes, deklarerad mime).
    Råa bildbytes släpps igenom som de är.
    """
    if payload is None:
        return b"", None

    if isinstance(payload, bytes):
        if not payload.startswith(b"data:"):
            return payload, None
        payload = payload.decode("ascii", errors="replace")

    text = payload.strip()
    if not text:
        return b"", None

    mime = None
    m = _DATA_URL.match(text)
    if m:
        mime = m.group("mime")
        text = m.group("data")
    elif text.startswith("data:"):
        raise InvalidSignature("signaturen är inte base64-kodad", field="signature")

    try:
        data = base64.b64decode(re.sub(r"\s", "", text), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidSignature("signaturen kunde inte avkodas", field="signature") from e
    return data, mime


def is_blank(img: Image.Image) -> bool:
    """
    Tom canvas: inga synliga pixlar, eller en enda jämn färg efter att
    bilden lagts på vit bakgrund.
    """
    rgba = img.convert("RGBA")
    if rgba.getchannel("A").getextrema()[1] == 0:
        return True

    background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
    grey = Image.alpha_composite(background, rgba).convert("L")
    lo, hi = grey.getextrema()
    return lo == hi


def load_signature(payload: Union[str, bytes, None]) -> SignatureImage:
    data, declared_mime = decode_payload(payload)
    if not data:
        raise InvalidSignature("signatur saknas", field="signature")
    if len(data) > MAX_SIGNATURE_BYTES:
        raise InvalidSignature("signaturbilden är för stor", field="signature")

    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise InvalidSignature("signaturen är ingen giltig bild", field="signature") from e

    if img.width == 0 or img.height == 0 or is_blank(img):
        raise InvalidSignature("signaturen är tom", field="signature")

    content_type = Image.MIME.get(img.format or "", declared_mime or "application/octet-stream")
    return SignatureImage(
        data=data,
        content_type=content_type,
        sha256=hashlib.sha256(data).hexdigest(),
        width=img.width,
        height=img.height,
    )
