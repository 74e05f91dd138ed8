"""
Feltaxonomi för motorn.

Alla fel är per anrop och går att återhämta sig från; inget av dem
ska få processen att krascha. Varje fel har en stabil code-sträng
och en HTTP-status som API-lagret använder.
"""

from __future__ import annotations

from typing import Optional


class HandymateError(Exception):
    code = "error"
    http_status = 400

    def __init__(self, message: str = "", *, field: Optional[str] = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.field = field

    def to_dict(self) -> dict:
        out = {"error": self.code, "detail": self.message}
        if self.field:
            out["field"] = self.field
        return out


# --- Beräkning -------------------------------------------------------------

class CalculationError(HandymateError):
    http_status = 422


class InvalidLineItem(CalculationError):
    code = "invalid_line_item"


class InvalidConfiguration(CalculationError):
    code = "invalid_configuration"


# --- Livscykel -------------------------------------------------------------

class LifecycleError(HandymateError):
    http_status = 409


class InvalidTransition(LifecycleError):
    code = "invalid_transition"


class ExpiredDocument(InvalidTransition):
    code = "expired_document"
    http_status = 410


class AlreadyAccepted(InvalidTransition):
    code = "already_accepted"


class MissingRequiredField(LifecycleError):
    code = "missing_required_field"
    http_status = 422


class ConcurrentModification(LifecycleError):
    code = "concurrent_modification"


# --- Signering -------------------------------------------------------------

class SigningError(HandymateError):
    http_status = 400


class TokenNotFound(SigningError):
    code = "token_not_found"
    http_status = 404


class TokenExpired(SigningError):
    code = "token_expired"
    http_status = 410


class TokenAlreadyConsumed(SigningError):
    code = "token_already_consumed"
    http_status = 409


class InvalidSignature(SigningError):
    code = "invalid_signature"
    http_status = 422


# --- Övrigt ----------------------------------------------------------------

class DocumentNotFound(HandymateError):
    code = "not_found"
    http_status = 404


class DataIntegrityError(HandymateError):
    code = "data_integrity"
    http_status = 500
