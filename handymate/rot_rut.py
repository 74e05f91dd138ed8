"""
ROT/RUT-beräkning för offert- och fakturamotorn.

Grundidé:
- Avdraget gäller endast på arbetskostnad (labor-rader). Material och
  tjänster utan arbetsinslag räknas aldrig in.
- Avdrag = min(arbetskostnad * procent / 100, max_per_person * antal personer)
- ROT: 30 %, max 50 000 kr per person och år.
- RUT: 50 %, max 75 000 kr per person och år.

Modulen är fristående och gör inga avrundningar; det sker vid presentation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from handymate.core.errors import InvalidConfiguration
from handymate.core.money import HUNDRED, ZERO


class DeductionType(str, Enum):
    ROT = "rot"
    RUT = "rut"


ROT_PERCENT = Decimal("30")
RUT_PERCENT = Decimal("50")
ROT_MAX_PER_PERSON = Decimal("50000")
RUT_MAX_PER_PERSON = Decimal("75000")


@dataclass(frozen=True)
class DeductionRules:
    # Justera procentsatserna om reglerna ändras (t.ex. tillfälligt 50 % ROT)
    rot_percent: Decimal = ROT_PERCENT
    rut_percent: Decimal = RUT_PERCENT
    rot_max_per_person: Decimal = ROT_MAX_PER_PERSON
    rut_max_per_person: Decimal = RUT_MAX_PER_PERSON
    rot_enabled: bool = True
    rut_enabled: bool = True

    def percent_for(self, deduction_type: Optional[DeductionType]) -> Decimal:
        if deduction_type is DeductionType.ROT:
            return self.rot_percent
        if deduction_type is DeductionType.RUT:
            return self.rut_percent
        return ZERO

    def max_per_person_for(self, deduction_type: Optional[DeductionType]) -> Decimal:
        if deduction_type is DeductionType.ROT:
            return self.rot_max_per_person
        if deduction_type is DeductionType.RUT:
            return self.rut_max_per_person
        return ZERO

    def is_enabled(self, deduction_type: Optional[DeductionType]) -> bool:
        if deduction_type is DeductionType.ROT:
            return self.rot_enabled
        if deduction_type is DeductionType.RUT:
            return self.rut_enabled
        return True


@dataclass(frozen=True)
class DeductionResult:
    deduction_type: Optional[DeductionType]
    eligible: Decimal
    percent: Decimal
    amount: Decimal
    limited_by_max: bool
    max_total: Decimal


def parse_deduction_type(value: object) -> Optional[DeductionType]:
    """
    "rot"/"ROT" -> DeductionType.ROT, ""/None/"none" -> None.
    """
    if value is None or isinstance(value, DeductionType):
        return value
    text = str(value).strip().lower()
    if text in ("", "none"):
        return None
    try:
        return DeductionType(text)
    except ValueError as e:
        raise InvalidConfiguration(f"okänd avdragstyp: {value!r}", field="deduction_type") from e


def calculate_deduction(
    labor_total: Decimal,
    deduction_type: Optional[DeductionType],
    rules: DeductionRules,
    *,
    persons: int = 1,
) -> DeductionResult:
    """
    Beräknar ROT/RUT-avdrag på arbetskostnaden.

    Strategi:
    1. Avdragsgrundande belopp = arbetskostnad (material räknas aldrig).
    2. Teoretiskt avdrag = grund * procent / 100.
    3. Begränsa till max per person * antal personer.
    """
    if deduction_type is None:
        return DeductionResult(
            deduction_type=None,
            eligible=labor_total,
            percent=ZERO,
            amount=ZERO,
            limited_by_max=False,
            max_total=ZERO,
        )

    if not rules.is_enabled(deduction_type):
        raise InvalidConfiguration(
            f"{deduction_type.value.upper()}-avdrag är inte aktiverat för företaget",
            field="deduction_type",
        )
    if isinstance(persons, bool) or not isinstance(persons, int) or persons < 1:
        raise InvalidConfiguration("antal personer för avdrag måste vara minst 1", field="deduction_persons")

    percent = rules.percent_for(deduction_type)
    if percent < ZERO or percent > HUNDRED:
        raise InvalidConfiguration(f"ogiltig avdragsprocent: {percent}", field="deduction_percent")

    eligible = labor_total
    theoretical = eligible * percent / HUNDRED
    max_total = rules.max_per_person_for(deduction_type) * persons

    amount = min(theoretical, max_total)
    return DeductionResult(
        deduction_type=deduction_type,
        eligible=eligible,
        percent=percent,
        amount=amount,
        limited_by_max=amount < theoretical,
        max_total=max_total,
    )


def deduction_label(deduction_type: Optional[DeductionType], rules: Optional[DeductionRules] = None) -> str:
    """'ROT-avdrag 30%' / 'RUT-avdrag 50%' / ''."""
    if deduction_type is None:
        return ""
    rules = rules or DeductionRules()
    percent = rules.percent_for(deduction_type).normalize()
    return f"{deduction_type.value.upper()}-avdrag {percent:f}%"
