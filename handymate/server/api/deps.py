from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException

from handymate.core.clock import utcnow
from handymate.server.settings.config import settings
from handymate.services.business_config import BusinessConfig, load_business_config
from handymate.services.delivery import DeliveryChannel, LoggingDelivery

# ==============================
# API KEY
# ==============================

API_KEY_HEADER_NAME = "X-HANDYMATE-API-KEY"
BUSINESS_HEADER_NAME = "X-Business-Id"


def verify_api_key(x_handymate_api_key: str = Header(None)) -> None:
    if x_handymate_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def get_business_id(x_business_id: str = Header(None)) -> str:
    business_id = (x_business_id or "").strip()
    if not business_id:
        raise HTTPException(status_code=400, detail=f"{BUSINESS_HEADER_NAME} saknas")
    return business_id


# ==============================
# KLOCKA / LEVERANS / KONFIG
# ==============================

def get_now() -> datetime:
    return utcnow()


_delivery = LoggingDelivery()


def get_delivery() -> DeliveryChannel:
    return _delivery


def get_config_loader() -> Callable[[str], BusinessConfig]:
    path = Path(settings.business_config_path) if settings.business_config_path else None

    def _load(business_id: Optional[str]) -> BusinessConfig:
        return load_business_config(business_id, path)

    return _load


def get_business_config(
    business_id: str = Depends(get_business_id),
    loader: Callable[[str], BusinessConfig] = Depends(get_config_loader),
) -> BusinessConfig:
    return loader(business_id)
