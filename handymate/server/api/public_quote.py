from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from handymate.server.api.deps import get_config_loader, get_now
from handymate.server.db.session import get_session
from handymate.server.schemas.signing import DeclineIn, SignatureIn
from handymate.services import signing

# Kundens signeringssida – ingen API-nyckel, nyckeln i länken räcker
router = APIRouter(prefix="/quote", tags=["signing"])


@router.get("/{token}", summary="Visa offert via signeringslänk")
def resolve_quote(
    token: str,
    now: datetime = Depends(get_now),
    config_loader: Callable = Depends(get_config_loader),
    session: Session = Depends(get_session),
):
    view = signing.resolve(session, token, now=now, config_loader=config_loader)
    return view.as_dict()


@router.post("/{token}", summary="Signera offert")
def sign_quote(
    token: str,
    payload: SignatureIn,
    request: Request,
    now: datetime = Depends(get_now),
    config_loader: Callable = Depends(get_config_loader),
    session: Session = Depends(get_session),
):
    outcome = signing.submit_signature(
        session,
        token,
        payload.signer_name,
        payload.signature,
        now=now,
        signer_ip=request.client.host if request.client else None,
        config_loader=config_loader,
    )
    return outcome.as_dict()


@router.post("/{token}/decline", summary="Neka offert")
def decline_quote(
    token: str,
    payload: DeclineIn,
    now: datetime = Depends(get_now),
    config_loader: Callable = Depends(get_config_loader),
    session: Session = Depends(get_session),
):
    view = signing.decline(session, token, payload.reason, now=now, config_loader=config_loader)
    return view.as_dict()
