from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from datetime import timedelta
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from handymate.core.money import to_decimal
from handymate.core.reminders import DEFAULT_REMINDER_TEMPLATE
from handymate.rot_rut import DeductionRules

logger = logging.getLogger(__name__)

# Projektrot, t.ex. D:\handymate
ROOT = Path(__file__).resolve().parents[2]

# Här förväntar vi oss business_config.yaml
BUSINESS_CONFIG_PATH = ROOT / "knowledge" / "business_config.yaml"


@dataclass(frozen=True)
class BusinessConfig:
    """
    Företagets inställningar. Skickas explicit in i kalkylatorn och
    tjänsterna – läses aldrig ur global kontext.
    """

    business_name: str = ""
    phone_number: str = ""
    bankgiro: str = ""
    swish_number: str = ""
    org_number: str = ""

    hourly_rate: Decimal = Decimal("650")
    vat_rate: Decimal = Decimal("25")

    rot_enabled: bool = True
    rut_enabled: bool = True
    rot_percent: Decimal = Decimal("30")
    rut_percent: Decimal = Decimal("50")
    rot_max_per_person: Decimal = Decimal("50000")
    rut_max_per_person: Decimal = Decimal("75000")

    quote_valid_days: int = 30
    invoice_due_days: int = 30
    reminder_cooldown_days: int = 7
    late_fee_percent: Decimal = Decimal("8")
    signing_token_ttl_days: int = 30
    reminder_template: str = DEFAULT_REMINDER_TEMPLATE

    @property
    def deduction_rules(self) -> DeductionRules:
        return DeductionRules(
            rot_percent=self.rot_percent,
            rut_percent=self.rut_percent,
            rot_max_per_person=self.rot_max_per_person,
            rut_max_per_person=self.rut_max_per_person,
            rot_enabled=self.rot_enabled,
            rut_enabled=self.rut_enabled,
        )

    @property
    def reminder_cooldown(self) -> timedelta:
        return timedelta(days=self.reminder_cooldown_days)

    @property
    def signing_token_ttl(self) -> timedelta:
        return timedelta(days=self.signing_token_ttl_days)


_FIELD_TYPES = {f.name: f.type for f in fields(BusinessConfig)}


def _coerce(name: str, value: Any) -> Any:
    kind = _FIELD_TYPES[name]
    if kind in ("Decimal", Decimal):
        return to_decimal(value)
    if kind in ("bool", bool):
        return bool(value)
    if kind in ("int", int):
        return int(value)
    return "" if value is None else str(value)


def _overrides(raw: Any) -> Dict[str, Any]:
    """
    Plockar ut kända nycklar ur en YAML-dict. Okända nycklar ignoreras,
    värden som inte går att tolka loggas och hoppas över.
    """
    out: Dict[str, Any] = {}
    if not isinstance(raw, dict):
        return out
    for key, value in raw.items():
        if key not in _FIELD_TYPES:
            continue
        try:
            out[key] = _coerce(key, value)
        except (TypeError, ValueError):
            logger.warning("business_config: ogiltigt värde för %s: %r", key, value)
    return out


@lru_cache(maxsize=8)
def _load_raw_config_yaml(path: str) -> Any:
    """
    Läser YAML-filen en gång per sökväg och cache:ar resultatet.
    """
    p = Path(path)
    if not p.exists():
        return {}

    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        # Trasig fil – bete oss som om den inte fanns
        logger.warning("business_config: kunde inte läsa %s: %s", p, e)
        return {}

    return data


def load_business_config(business_id: Optional[str], path: Optional[Path] = None) -> BusinessConfig:
    """
    Returnerar konfiguration för ett företag.

    YAML-struktur:

      defaults:
        vat_rate: 25
        rot_enabled: true
      businesses:
        biz_123:
          business_name: "Elfirman AB"
          rut_enabled: false

    Företagsspecifika värden går före defaults, som går före inbyggda standardvärden.
    """
    raw = _load_raw_config_yaml(str(path or BUSINESS_CONFIG_PATH))
    if not isinstance(raw, dict):
        raw = {}

    config = replace(BusinessConfig(), **_overrides(raw.get("defaults")))

    businesses = raw.get("businesses") or {}
    if business_id and isinstance(businesses, dict):
        config = replace(config, **_overrides(businesses.get(business_id)))

    return config


def clear_cache() -> None:
    _load_raw_config_yaml.cache_clear()
